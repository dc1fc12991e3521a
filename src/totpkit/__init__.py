from __future__ import annotations

from .errors import DecodeError, EncodeError, OtpError, TimeError
from .totp import Totp
from .util import calc_digest, decode_secret, derive_counter, encode_digest

__all__ = [
    "Totp",
    "OtpError",
    "TimeError",
    "DecodeError",
    "EncodeError",
    "decode_secret",
    "derive_counter",
    "calc_digest",
    "encode_digest",
]
