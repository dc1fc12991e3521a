from __future__ import annotations


class OtpError(Exception):
    """
    ワンタイムパスワード計算の失敗を表す基底例外。
    - 失敗はすべて決定的（同じ入力なら同じ結果）なので、ライブラリ内でリトライ・握り潰しは行わない
    - 呼び出し側は OtpError をまとめて捕捉するか、下記サブクラスで分岐する
    """


class TimeError(OtpError):
    """時刻をエポック秒で表現できない（エポック以前・範囲外）、または time_step が正でない。"""


class DecodeError(OtpError):
    """シークレットがパディング無しBase32として不正。"""


class EncodeError(OtpError):
    """ダイジェストが短すぎる、または切り詰め窓がダイジェスト末尾を超える。"""
