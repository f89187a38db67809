"""Tests for the TOTP engine."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from twofa.auth import totp
from twofa.auth.totp import Secret, TotpEngine, compute_code, generate_secret, verify_code
from twofa.base32 import encode
from twofa.errors import InvalidParameterError, InvalidSecretError

RFC_SECRET = encode(b"12345678901234567890")


def test_rfc6238_sha1_vector():
    assert compute_code(RFC_SECRET, 59, time_step=30, digits=8) == "94287082"
    assert compute_code(RFC_SECRET, 1111111109, digits=8) == "07081804"
    assert compute_code(RFC_SECRET, 2000000000, digits=8) == "69279037"


def test_rfc6238_sha256_vector():
    secret = encode(b"12345678901234567890123456789012")
    assert compute_code(secret, 59, digits=8, digest="sha256") == "46119246"


def test_accepts_secret_object_and_datetime():
    secret = Secret(b"12345678901234567890")
    when = datetime.fromtimestamp(59, tz=UTC)
    assert compute_code(secret, when, digits=8) == "94287082"


def test_compute_code_is_deterministic():
    secret = generate_secret()
    assert compute_code(secret, 1_700_000_000) == compute_code(secret, 1_700_000_000)
    assert len(compute_code(secret, 1_700_000_000)) == 6


def test_same_step_same_code():
    assert compute_code(RFC_SECRET, 60) == compute_code(RFC_SECRET, 89)


def test_rfc4226_counter_values():
    # RFC 4226 appendix D, counters 1-4
    assert [compute_code(RFC_SECRET, 30 * c) for c in range(1, 5)] == [
        "287082",
        "359152",
        "969429",
        "338314",
    ]


def test_verify_window():
    ts = 95  # counter 3
    assert verify_code(RFC_SECRET, "969429", ts)
    assert verify_code(RFC_SECRET, "359152", ts, window=1)  # ts - 30
    assert verify_code(RFC_SECRET, "338314", ts, window=1)  # ts + 30
    assert not verify_code(RFC_SECRET, "287082", ts, window=1)  # ts - 60
    assert verify_code(RFC_SECRET, "287082", ts, window=2)


def test_verify_window_zero_is_exact():
    ts = 95
    assert verify_code(RFC_SECRET, "969429", ts, window=0)
    assert not verify_code(RFC_SECRET, "359152", ts, window=0)
    assert not verify_code(RFC_SECRET, "338314", ts, window=0)


def test_verify_rejects_wrong_length_without_hmac(monkeypatch):
    def boom(*args, **kwargs):
        raise AssertionError("HMAC computed for a malformed code")

    monkeypatch.setattr(totp, "_hotp", boom)
    assert verify_code(RFC_SECRET, "12345", 59) is False
    assert verify_code(RFC_SECRET, "1234567", 59) is False
    assert verify_code(RFC_SECRET, "", 59) is False
    assert verify_code(RFC_SECRET, "12a456", 59) is False


def test_verify_negative_window_raises():
    with pytest.raises(InvalidParameterError):
        verify_code(RFC_SECRET, "123456", 59, window=-1)


def test_generate_secret_length_and_randomness():
    s1 = generate_secret()
    s2 = generate_secret()
    assert len(s1) == 20
    assert s1 != s2
    assert len(generate_secret(32)) == 32


def test_generate_secret_below_floor_raises():
    with pytest.raises(InvalidParameterError):
        generate_secret(10)


def test_invalid_secret_raises():
    with pytest.raises(InvalidSecretError):
        compute_code("", 59)
    with pytest.raises(InvalidSecretError):
        compute_code("not base32!", 59)


def test_invalid_parameters_raise():
    with pytest.raises(InvalidParameterError):
        compute_code(RFC_SECRET, 59, time_step=0)
    with pytest.raises(InvalidParameterError):
        compute_code(RFC_SECRET, 59, digits=4)
    with pytest.raises(InvalidParameterError):
        compute_code(RFC_SECRET, 59, digest="md5")
    with pytest.raises(InvalidParameterError):
        compute_code(RFC_SECRET, -1)


def test_secret_repr_hides_value():
    secret = Secret(b"12345678901234567890")
    assert "1234" not in repr(secret)
    assert secret.base32 not in str(secret)
    assert Secret.from_base32(secret.base32.lower()) == secret


def test_engine_uses_its_parameters():
    engine = TotpEngine(digits=8)
    assert engine.code_at(RFC_SECRET, 59) == "94287082"
    assert engine.verify(RFC_SECRET, "94287082", 59)
    assert len(engine.now(engine.generate_secret())) == 8


def test_engine_rejects_weak_secret_length():
    with pytest.raises(InvalidParameterError):
        TotpEngine(secret_bytes=10)
