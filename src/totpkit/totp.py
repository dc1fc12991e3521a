from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from .config import Settings
from .errors import DecodeError, TimeError
from .util import calc_digest, decode_secret, derive_counter, encode_digest

logger = logging.getLogger(__name__)

TimePoint = Union[int, float, datetime]

_EPOCH = datetime(1970, 1, 1)
_I64_MAX = 2**63 - 1


def _unix_now() -> float:
    return time.time()


def _to_epoch_seconds(time_point: TimePoint) -> int:
    """
    時刻をエポック秒（整数、切り捨て）へ変換する。
    - datetime: naive は UTC とみなす
    - int/float: エポック秒
    エポック以前、または符号付き64bitに収まらない場合は TimeError。
    """
    if isinstance(time_point, datetime):
        if time_point.tzinfo is not None:
            try:
                time_point = time_point.astimezone(timezone.utc).replace(tzinfo=None)
            except (OverflowError, ValueError) as e:
                raise TimeError(f"time point cannot be converted to UTC: {time_point!r}") from e
        delta = time_point - _EPOCH
        seconds = delta.days * 86400 + delta.seconds
    elif isinstance(time_point, (int, float)):
        try:
            seconds = math.floor(time_point)
        except (ValueError, OverflowError) as e:
            raise TimeError(f"time point is not a finite number: {time_point!r}") from e
    else:
        raise TypeError(f"unsupported time point type: {type(time_point).__name__}")

    if seconds < 0:
        raise TimeError(f"time point predates the Unix epoch: {time_point!r}")
    if seconds > _I64_MAX:
        raise TimeError(f"time point out of range: {time_point!r}")
    return seconds


class Totp(BaseModel):
    """
    RFC 6238 TOTP（HMAC-SHA1, 6桁）の設定を保持し、コード生成/照合を行う。
    - 生成後は不変（frozen）。複数スレッドから読み取り専用で共有してよい
    - 構築時の検証は行わない。シークレットは at()/now()/verify() のたびに復号する
    - 呼び出し間で状態を持たない（リプレイ検出は呼び出し側の責務）
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    secret: str = Field(repr=False)
    time_step: int = 30
    skew: int = 0

    def __init__(self, secret: str, time_step: int = 30, skew: int = 0) -> None:
        super().__init__(secret=secret, time_step=time_step, skew=skew)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Totp":
        # 未設定を空文字（空の鍵）として扱うと、それらしいコードを黙って返してしまう
        if not settings.TOTP_SECRET:
            raise DecodeError("TOTP_SECRET is not set")
        return cls(
            settings.TOTP_SECRET,
            time_step=settings.TOTP_TIME_STEP,
            skew=settings.TOTP_SKEW,
        )

    def counter_at(self, time_point: TimePoint) -> int:
        return derive_counter(_to_epoch_seconds(time_point), self.skew, self.time_step)

    def at(self, time_point: TimePoint) -> int:
        """指定時刻のコードを返す（0..999999 の整数。ゼロ埋めは表示側で行う）。"""
        counter = self.counter_at(time_point)
        logger.debug("totp counter=%d time_step=%d skew=%d", counter, self.time_step, self.skew)
        key = decode_secret(self.secret)
        return encode_digest(calc_digest(key, counter))

    def now(self) -> int:
        return self.at(_unix_now())

    # alias
    def generate(self) -> int:
        return self.now()

    def verify(self, candidate: int) -> bool:
        """
        現在時刻のコードと candidate が一致するかを返す。
        同じタイムステップ内なら何度でも True になる（使用済みコードの記録はしない）。
        """
        return self.now() == candidate
