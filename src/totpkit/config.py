from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # 共有シークレット（パディング無しBase32）
    TOTP_SECRET: str | None = None
    # 1カウンタあたりの秒数
    TOTP_TIME_STEP: int = 30
    # 時計ずれ補正（秒、負値可）
    TOTP_SKEW: int = 0

    # ログ
    LOG_JSON: bool = False
    LOG_FILE: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def validate_for_cli(self) -> None:
        """
        CLI実行前の簡易バリデーション:
        - TOTP_SECRET は必須（空文字も不可）
        - TOTP_TIME_STEP は正の整数
        シークレットの形式（Base32）はここでは検査せず、コード生成時に DecodeError となる。
        """
        if not self.TOTP_SECRET:
            raise ValueError("TOTP_SECRET is required.")
        if self.TOTP_TIME_STEP <= 0:
            raise ValueError(f"TOTP_TIME_STEP must be positive: {self.TOTP_TIME_STEP}")


def load_settings() -> Settings:
    return Settings()
