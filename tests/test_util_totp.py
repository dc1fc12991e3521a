from __future__ import annotations

import pytest

from totpkit.errors import DecodeError, EncodeError, OtpError, TimeError
from totpkit.util import calc_digest, decode_secret, derive_counter, encode_digest

# RFC 6238 / RFC 4226 のテスト用シークレット（ASCII '12345678901234567890'）
RFC_KEY = b"12345678901234567890"
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


def test_decode_secret_rfc_secret() -> None:
    assert decode_secret(RFC_SECRET) == RFC_KEY


def test_decode_secret_unpadded_short_values() -> None:
    assert decode_secret("MZXW6") == b"foo"
    assert decode_secret("MZXW6YTBOI") == b"foobar"
    assert decode_secret("") == b""


@pytest.mark.parametrize(
    "secret",
    [
        "gezdgnbvgy3tqojq",  # 小文字
        "GEZDGNB0",  # 0
        "GEZDGNB1",  # 1
        "GEZDGNB8",  # 8
        "GEZDGNB9",  # 9
        "MZXW6===",  # パディング
        "MZXW 6",  # 空白
    ],
)
def test_decode_secret_rejects_non_alphabet(secret: str) -> None:
    with pytest.raises(DecodeError):
        decode_secret(secret)


def test_decode_secret_rejects_invalid_length() -> None:
    # len % 8 が 1/3/6 のものはパディング無しBase32として不正
    for secret in ("M", "MZX", "MZXW6Y", "MZXW6YTBO"):
        with pytest.raises(DecodeError):
            decode_secret(secret)


def test_decode_secret_rejects_non_zero_trailing_bits() -> None:
    # 'MZXW6' の末尾 '6' を '7' にすると余りビットが1になる
    with pytest.raises(DecodeError):
        decode_secret("MZXW7")


def test_decode_error_is_otp_error() -> None:
    with pytest.raises(OtpError):
        decode_secret("abc")


def test_derive_counter_basic() -> None:
    assert derive_counter(59, 0, 30) == 1
    assert derive_counter(60, 0, 30) == 2
    assert derive_counter(59, -59, 30) == 0
    assert derive_counter(1111111109, 0, 30) == 0x23523EC


def test_derive_counter_negative_sum_wraps_to_unsigned() -> None:
    assert derive_counter(0, -1, 30) == (2**64 - 1) // 30


def test_derive_counter_monotonic_across_steps() -> None:
    step = 30
    for t1 in (0, 29, 59, 1111111109):
        for t2 in (t1 + step, t1 + step + 7, t1 + 10 * step):
            assert derive_counter(t2, 0, step) > derive_counter(t1, 0, step)


def test_derive_counter_rejects_non_positive_time_step() -> None:
    with pytest.raises(TimeError):
        derive_counter(59, 0, 0)
    with pytest.raises(TimeError):
        derive_counter(59, 0, -30)


def test_calc_digest_rfc4226_counter_zero() -> None:
    digest = calc_digest(RFC_KEY, 0)
    assert len(digest) == 20
    assert digest.hex() == "cc93cf18508d94934c64b65d8ba7667fb7cde4b0"


def test_hotp_rfc4226_vectors() -> None:
    expected = [755224, 287082, 359152, 969429, 338314, 254676, 287922, 162583, 399871, 520489]
    for counter, code in enumerate(expected):
        assert encode_digest(calc_digest(RFC_KEY, counter)) == code


def test_encode_digest_rfc4226_example() -> None:
    # RFC 4226 5.4 の例: offset=0xa, 0x50ef7f19 -> 872921
    digest = bytes.fromhex("1f8698690e02ca16618550ef7f19da8e945b555a")
    assert encode_digest(digest) == 872921


def test_encode_digest_max_offset_fits() -> None:
    digest = bytes(15) + b"\x00\x00\x30\x39" + b"\x0f"
    assert len(digest) == 20
    assert encode_digest(digest) == 12345


def test_encode_digest_masks_sign_bit() -> None:
    digest = bytes(15) + b"\xff\xff\xff\xff" + b"\x0f"
    assert encode_digest(digest) == 0x7FFFFFFF % 1_000_000


def test_encode_digest_window_past_end() -> None:
    with pytest.raises(EncodeError):
        encode_digest(bytes(17) + b"\x0f")
    with pytest.raises(EncodeError):
        encode_digest(b"\x01\x02")


def test_encode_digest_empty() -> None:
    with pytest.raises(EncodeError):
        encode_digest(b"")
