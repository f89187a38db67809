"""TOTP (Time-based One-Time Password) engine for 2FA.

Uses pyotp for the RFC 4226 HOTP computation; the time-step counter, the
skew window and input checks are handled here so callers can pass explicit
timestamps.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from datetime import UTC, datetime

import pyotp

from twofa.base32 import decode as b32decode
from twofa.base32 import encode as b32encode
from twofa.config import Settings, settings
from twofa.errors import InvalidEncodingError, InvalidParameterError, InvalidSecretError

DEFAULT_SECRET_BYTES = 20
MIN_SECRET_BYTES = 16
DEFAULT_TIME_STEP = 30
DEFAULT_DIGITS = 6

_DIGESTS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}

Timestamp = int | float | datetime


@dataclass(frozen=True, slots=True, repr=False)
class Secret:
    """Raw TOTP key bytes. The value is never shown in repr."""

    raw: bytes

    @classmethod
    def from_base32(cls, text: str) -> Secret:
        if not text or not text.strip():
            raise InvalidSecretError("Secret is empty")
        try:
            raw = b32decode(text)
        except InvalidEncodingError as exc:
            raise InvalidSecretError("Secret is not valid Base32") from exc
        if not raw:
            raise InvalidSecretError("Secret is empty")
        return cls(raw)

    @property
    def base32(self) -> str:
        return b32encode(self.raw)

    def __len__(self) -> int:
        return len(self.raw)

    def __repr__(self) -> str:
        return f"Secret(<{len(self.raw)} bytes>)"

    __str__ = __repr__


def as_secret(secret: Secret | str) -> Secret:
    """Accept either a Secret or its Base32 text."""
    if isinstance(secret, Secret):
        if not secret.raw:
            raise InvalidSecretError("Secret is empty")
        return secret
    if isinstance(secret, str):
        return Secret.from_base32(secret)
    raise InvalidSecretError(f"Unsupported secret type: {type(secret).__name__}")


def _unix(timestamp: Timestamp) -> float:
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        return timestamp.timestamp()
    return float(timestamp)


def _check_params(time_step: int, digits: int, digest: str) -> None:
    if time_step <= 0:
        raise InvalidParameterError(f"time_step must be positive, got {time_step}")
    if not 6 <= digits <= 10:
        raise InvalidParameterError(f"digits must be between 6 and 10, got {digits}")
    if digest not in _DIGESTS:
        raise InvalidParameterError(f"Unsupported digest {digest!r}; use one of {sorted(_DIGESTS)}")


def _hotp(secret: Secret, digits: int, digest: str) -> pyotp.HOTP:
    return pyotp.HOTP(secret.base32, digits=digits, digest=_DIGESTS[digest])


def counter_for(timestamp: Timestamp, time_step: int = DEFAULT_TIME_STEP) -> int:
    """Index of the time step containing ``timestamp``."""
    ts = _unix(timestamp)
    if ts < 0:
        raise InvalidParameterError("timestamp must not be negative")
    return int(ts // time_step)


def generate_secret(byte_length: int = DEFAULT_SECRET_BYTES, *, min_bytes: int = MIN_SECRET_BYTES) -> Secret:
    """Generate a new random secret from the OS CSPRNG."""
    if byte_length < min_bytes:
        raise InvalidParameterError(
            f"Secret length {byte_length} bytes is below the {min_bytes}-byte minimum"
        )
    return Secret(secrets.token_bytes(byte_length))


def compute_code(
    secret: Secret | str,
    timestamp: Timestamp,
    time_step: int = DEFAULT_TIME_STEP,
    digits: int = DEFAULT_DIGITS,
    digest: str = "sha1",
) -> str:
    """Get the TOTP code for ``secret`` at ``timestamp``."""
    _check_params(time_step, digits, digest)
    key = as_secret(secret)
    return _hotp(key, digits, digest).at(counter_for(timestamp, time_step))


def verify_code(
    secret: Secret | str,
    submitted: str,
    timestamp: Timestamp,
    window: int = 1,
    time_step: int = DEFAULT_TIME_STEP,
    digits: int = DEFAULT_DIGITS,
    digest: str = "sha1",
) -> bool:
    """Verify a submitted code, allowing +-``window`` time steps of clock skew.

    Submissions of the wrong length or with non-digit characters are rejected
    before any HMAC is computed.
    """
    _check_params(time_step, digits, digest)
    if window < 0:
        raise InvalidParameterError(f"window must not be negative, got {window}")
    if not isinstance(submitted, str) or len(submitted) != digits:
        return False
    if not (submitted.isascii() and submitted.isdigit()):
        return False

    key = as_secret(secret)
    hotp = _hotp(key, digits, digest)
    counter = counter_for(timestamp, time_step)
    for candidate in range(counter - window, counter + window + 1):
        if candidate < 0:
            continue
        if hmac.compare_digest(hotp.at(candidate).encode(), submitted.encode()):
            return True
    return False


@dataclass(frozen=True)
class TotpEngine:
    """TOTP parameters bundled together, usually built from settings."""

    time_step: int = DEFAULT_TIME_STEP
    digits: int = DEFAULT_DIGITS
    digest: str = "sha1"
    window: int = 1
    secret_bytes: int = DEFAULT_SECRET_BYTES
    min_secret_bytes: int = MIN_SECRET_BYTES

    def __post_init__(self) -> None:
        _check_params(self.time_step, self.digits, self.digest)
        if self.window < 0:
            raise InvalidParameterError(f"window must not be negative, got {self.window}")
        if self.secret_bytes < self.min_secret_bytes:
            raise InvalidParameterError(
                f"secret_bytes {self.secret_bytes} is below the {self.min_secret_bytes}-byte minimum"
            )

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> TotpEngine:
        cfg = cfg or settings
        return cls(
            time_step=cfg.time_step,
            digits=cfg.digits,
            digest=cfg.digest,
            window=cfg.valid_window,
            secret_bytes=cfg.secret_bytes,
            min_secret_bytes=cfg.min_secret_bytes,
        )

    def generate_secret(self) -> Secret:
        return generate_secret(self.secret_bytes, min_bytes=self.min_secret_bytes)

    def code_at(self, secret: Secret | str, timestamp: Timestamp) -> str:
        return compute_code(secret, timestamp, self.time_step, self.digits, self.digest)

    def now(self, secret: Secret | str) -> str:
        """Get the current TOTP code for a secret."""
        return self.code_at(secret, time.time())

    def verify(self, secret: Secret | str, submitted: str, timestamp: Timestamp | None = None) -> bool:
        if timestamp is None:
            timestamp = time.time()
        return verify_code(
            secret,
            submitted,
            timestamp,
            window=self.window,
            time_step=self.time_step,
            digits=self.digits,
            digest=self.digest,
        )
