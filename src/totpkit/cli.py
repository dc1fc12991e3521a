from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import typer

from .config import Settings, load_settings
from .errors import OtpError
from .totp import TimePoint, Totp
from .util import DIGITS, parse_timestamp

app = typer.Typer(no_args_is_help=True, add_completion=False, help="TOTP（RFC 6238）コード生成・照合CLI")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # 追加情報（extra）をJSONに含める（標準属性を除外）
        for k, v in record.__dict__.items():
            if k.startswith("_"):
                continue
            if k in ("name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
                     "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created", "msecs",
                     "relativeCreated", "thread", "threadName", "processName", "process", "asctime",
                     "taskName"):
                continue
            payload[k] = v
        return json.dumps(payload, ensure_ascii=False)


class SecretMaskFilter(logging.Filter):
    def __init__(self, secrets: Optional[List[str]] = None) -> None:
        super().__init__()
        self.secrets = [s for s in (secrets or []) if s]

    def _mask(self, text: Any) -> str:
        s = str(text)
        for secret in self.secrets:
            repl = "***" if len(secret) < 8 else f"{secret[:2]}...{secret[-2:]}"
            s = s.replace(secret, repl)
        return s

    def _mask_arg(self, value: Any) -> Any:
        # 数値は %d 等の書式指定を壊さないよう、そのまま残す
        if isinstance(value, (int, float)):
            return value
        return self._mask(value)

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._mask(record.msg)
        if record.args:
            if isinstance(record.args, tuple):
                record.args = tuple(self._mask_arg(a) for a in record.args)
            elif isinstance(record.args, dict):
                record.args = {k: self._mask_arg(v) for k, v in record.args.items()}
        return True


def _setup_logging(json_log: bool = False, log_file: Optional[str] = None, secrets_to_mask: Optional[List[str]] = None) -> logging.Logger:
    """
    ログ設定を初期化する。
    - 標準エラー出力（StreamHandler）
    - 任意でファイル出力（.logs/totpkit.log 等）
    - JSONログフォーマットの選択
    ライブラリ側（totpkit.*）のレコードも伝播してくるため、マスクはハンドラ側に付ける。
    """
    logger = logging.getLogger("totpkit")
    logger.setLevel(logging.INFO)
    logger.propagate = False  # ルートへ伝播させない

    # 既存ハンドラをクリア（再呼び出し対策）
    for h in list(logger.handlers):
        logger.removeHandler(h)

    if json_log:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        path = Path(log_file).expanduser()
        if not path.suffix:
            # ディレクトリが指定された場合は totpkit.log を補完
            path = path / "totpkit.log"
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    for h in handlers:
        h.setFormatter(formatter)
        if secrets_to_mask:
            h.addFilter(SecretMaskFilter(secrets_to_mask))
        logger.addHandler(h)

    return logger


def _prepare(
    secret: Optional[str],
    time_step: Optional[int],
    skew: Optional[int],
    json_log: bool,
    log_file: Optional[str],
) -> tuple[Totp, logging.Logger]:
    """設定読込 → CLIオプションで上書き → バリデーション → ログ初期化。"""
    settings: Settings = load_settings()
    if secret is not None:
        settings.TOTP_SECRET = secret
    if time_step is not None:
        settings.TOTP_TIME_STEP = time_step
    if skew is not None:
        settings.TOTP_SKEW = skew
    try:
        settings.validate_for_cli()
    except ValueError as e:
        typer.secho(f"設定エラー: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    logger = _setup_logging(
        json_log=json_log or settings.LOG_JSON,
        log_file=log_file or settings.LOG_FILE,
        secrets_to_mask=[settings.TOTP_SECRET or ""],
    )
    return Totp.from_settings(settings), logger


def _parse_time_point(value: str) -> TimePoint:
    """エポック秒（整数）または日時文字列を受け付ける。"""
    v = value.strip()
    try:
        return int(v)
    except ValueError:
        pass
    dt = parse_timestamp(v)
    if dt is None:
        typer.secho(f"設定エラー: invalid timestamp: {value}", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    return dt


def _format_code(code: int) -> str:
    return f"{code:0{DIGITS}d}"


SecretOpt = typer.Option(None, "--secret", help="共有シークレット（パディング無しBase32）。未指定時は TOTP_SECRET")
TimeStepOpt = typer.Option(None, "--time-step", help="タイムステップ秒数。未指定時は TOTP_TIME_STEP（既定30）")
SkewOpt = typer.Option(None, "--skew", help="時計ずれ補正秒数（負値可）。未指定時は TOTP_SKEW（既定0）")
JsonLogOpt = typer.Option(False, "--json-log", help="ログをJSON形式で出力")
LogFileOpt = typer.Option(None, "--log-file", help="ログをファイルへ出力（パス指定。例: .logs/totpkit.log または .logs/）")


@app.command("now")
def now_cmd(
    secret: Optional[str] = SecretOpt,
    time_step: Optional[int] = TimeStepOpt,
    skew: Optional[int] = SkewOpt,
    json_log: bool = JsonLogOpt,
    log_file: Optional[str] = LogFileOpt,
) -> None:
    """現在時刻のコードを表示する。"""
    totp, logger = _prepare(secret, time_step, skew, json_log, log_file)
    try:
        code = totp.now()
    except OtpError as e:
        logger.error("now failed: %s", e)
        typer.secho(f"実行エラー: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(_format_code(code))


# 負のエポック秒（例: at -1）をオプションではなく引数として受け取る
@app.command("at", context_settings={"ignore_unknown_options": True})
def at_cmd(
    timestamp: str = typer.Argument(..., help="エポック秒（負値可）、または日時（YYYY-MM-DD / YYYY-MM-DD HH:MM:SS / ISO8601）"),
    secret: Optional[str] = SecretOpt,
    time_step: Optional[int] = TimeStepOpt,
    skew: Optional[int] = SkewOpt,
    json_log: bool = JsonLogOpt,
    log_file: Optional[str] = LogFileOpt,
) -> None:
    """指定時刻のコードを表示する。"""
    totp, logger = _prepare(secret, time_step, skew, json_log, log_file)
    time_point = _parse_time_point(timestamp)
    try:
        code = totp.at(time_point)
    except OtpError as e:
        logger.error("at failed timestamp=%s: %s", timestamp, e)
        typer.secho(f"実行エラー: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(_format_code(code))


@app.command("verify")
def verify_cmd(
    code: int = typer.Argument(..., help="照合するコード（6桁）"),
    secret: Optional[str] = SecretOpt,
    time_step: Optional[int] = TimeStepOpt,
    skew: Optional[int] = SkewOpt,
    json_log: bool = JsonLogOpt,
    log_file: Optional[str] = LogFileOpt,
) -> None:
    """現在時刻のコードと照合する。一致すれば OK（終了コード0）、不一致なら NG（終了コード1）。"""
    totp, logger = _prepare(secret, time_step, skew, json_log, log_file)
    try:
        ok = totp.verify(code)
    except OtpError as e:
        logger.error("verify failed: %s", e)
        typer.secho(f"実行エラー: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    logger.info("verify result=%s", "ok" if ok else "ng")
    if not ok:
        typer.secho("NG", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo("OK")


if __name__ == "__main__":
    app()
