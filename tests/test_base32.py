"""Tests for the Base32 codec."""

from __future__ import annotations

import base64
import os

import pytest

from twofa import base32
from twofa.errors import InvalidEncodingError


def test_encode_matches_rfc4648():
    assert base32.encode(b"foobar") == "MZXW6YTBOI"
    assert base32.encode(b"foobar", padding=True) == "MZXW6YTBOI======"
    assert base32.encode(b"") == ""


def test_round_trip():
    for n in (0, 1, 5, 10, 16, 20, 33):
        data = os.urandom(n)
        assert base32.decode(base32.encode(data)) == data


def test_decode_is_case_insensitive():
    assert base32.decode("mzxw6ytboi") == b"foobar"


def test_decode_accepts_padding_and_spacing():
    assert base32.decode("MZXW 6YTB OI======") == b"foobar"
    assert base32.decode("MZXW-6YTB-OI") == b"foobar"


def test_decode_matches_stdlib():
    data = b"12345678901234567890"
    assert base32.decode(base64.b32encode(data).decode()) == data


def test_decode_rejects_bad_characters():
    with pytest.raises(InvalidEncodingError):
        base32.decode("MZXW01")  # 0 and 1 are not in the alphabet


def test_decode_rejects_impossible_length():
    with pytest.raises(InvalidEncodingError):
        base32.decode("A")


def test_encoding_error_is_value_error():
    with pytest.raises(ValueError):
        base32.decode("!!!!")
