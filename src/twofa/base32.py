"""RFC 4648 Base32, the text form of TOTP secrets."""

from __future__ import annotations

import base64
import binascii

from twofa.errors import InvalidEncodingError

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_VALID = frozenset(ALPHABET)


def encode(data: bytes, *, padding: bool = False) -> str:
    """Encode bytes as uppercase Base32. Trailing ``=`` is dropped unless asked for."""
    text = base64.b32encode(bytes(data)).decode("ascii")
    return text if padding else text.rstrip("=")


def normalize(text: str) -> str:
    """Uppercase, strip whitespace/hyphens and padding. Does not validate."""
    return "".join(text.split()).replace("-", "").upper().rstrip("=")


def decode(text: str) -> bytes:
    """Decode Base32 text, case-insensitively.

    Spaces and hyphens (as typed from a printed secret) and trailing padding
    are ignored. Raises InvalidEncodingError for anything else.
    """
    if not isinstance(text, str):
        raise InvalidEncodingError(f"Expected str, got {type(text).__name__}")
    s = normalize(text)
    bad = set(s) - _VALID
    if bad:
        raise InvalidEncodingError(f"Invalid Base32 character(s): {''.join(sorted(bad))!r}")
    # Lengths 1, 3 and 6 (mod 8) cannot come from any byte sequence.
    if len(s) % 8 in (1, 3, 6):
        raise InvalidEncodingError(f"Invalid Base32 length: {len(s)}")
    try:
        return base64.b32decode(s + "=" * (-len(s) % 8))
    except binascii.Error as exc:
        raise InvalidEncodingError("Invalid Base32 text") from exc
