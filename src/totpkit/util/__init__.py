from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
import struct
from datetime import datetime, timezone
from typing import Optional

from ..errors import DecodeError, EncodeError, TimeError

# HMAC-SHA1 / 6桁 は固定（RFC 4226/6238 の相互運用ベースライン）
DIGEST = hashlib.sha1
DIGITS = 6
MODULUS = 10**DIGITS

_U64_MASK = 0xFFFFFFFFFFFFFFFF
_BASE32_NOPAD = re.compile(r"[A-Z2-7]*")
# パディング無しBase32で取り得ない長さ（len % 8）
_INVALID_NOPAD_REMAINDERS = (1, 3, 6)


def decode_secret(secret: str) -> bytes:
    """
    パディング無しBase32（RFC 4648, 大文字 A-Z と 2-7 のみ）のシークレットを生バイト列へ復号する。
    - 小文字・0/1/8/9・'=' などアルファベット外の文字は DecodeError
    - 長さ（len % 8）が 1/3/6 のものは DecodeError
    - 末尾シンボルの余りビットが0でない（非正規形）ものも DecodeError
    """
    if not _BASE32_NOPAD.fullmatch(secret):
        raise DecodeError("secret contains characters outside the unpadded Base32 alphabet")
    if len(secret) % 8 in _INVALID_NOPAD_REMAINDERS:
        raise DecodeError(f"invalid length for unpadded Base32: {len(secret)}")
    try:
        raw = base64.b32decode(secret + "=" * (-len(secret) % 8))
    except binascii.Error as e:
        raise DecodeError(f"invalid Base32 secret: {e}") from e
    if base64.b32encode(raw).decode("ascii").rstrip("=") != secret:
        raise DecodeError("non-zero trailing bits in Base32 secret")
    return raw


def derive_counter(now_seconds: int, skew: int, time_step: int) -> int:
    """
    エポック秒 + skew を time_step で割った 64bit カウンタを返す。
    和は符号付きで計算してから符号無し64bitとして解釈する。
    和が負になると非常に大きなカウンタになるが、特別扱いはしない。
    """
    if time_step <= 0:
        raise TimeError(f"time_step must be positive: {time_step}")
    return ((now_seconds + skew) & _U64_MASK) // time_step


def calc_digest(secret: bytes, counter: int) -> bytes:
    """カウンタを8バイト big-endian にしたものを HMAC-SHA1 で署名する（20バイト）。"""
    return hmac.new(secret, struct.pack(">Q", counter), DIGEST).digest()


def encode_digest(digest: bytes) -> int:
    """
    RFC 4226 5.3 の動的切り詰め:
    - offset = 末尾バイトの下位4bit
    - digest[offset:offset+4] を big-endian の32bit整数として読み、符号ビットを落とす
    - 10**6 で割った余りを返す
    """
    if not digest:
        raise EncodeError("digest is empty")
    offset = digest[-1] & 0x0F
    if offset + 4 > len(digest):
        raise EncodeError(
            f"truncation window {offset}..{offset + 4} exceeds digest length {len(digest)}"
        )
    (window,) = struct.unpack(">I", digest[offset : offset + 4])
    return (window & 0x7FFFFFFF) % MODULUS


def parse_timestamp(value: str) -> Optional[datetime]:
    """
    文字列の日時をパースして naive UTC の datetime を返す。
    対応例: 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM:SS', ISO8601（末尾Zは+00:00として解釈）
    パースできない場合は None。
    """
    if not value:
        return None
    v = str(value).strip()
    dt: Optional[datetime] = None
    try:
        if v.endswith("Z"):
            v = v[:-1] + "+00:00"
        dt = datetime.fromisoformat(v)
    except ValueError:
        dt = None
    if dt is None:
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
            try:
                dt = datetime.strptime(v, fmt)
                break
            except ValueError:
                continue
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
