"""AES-256-GCM encryption of TOTP secrets at rest."""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from twofa.config import settings

_NONCE_SIZE = 12  # 96-bit nonce for AES-GCM
_AAD = b"twofa-secret"


def is_configured() -> bool:
    return bool(settings.master_key)


def _get_key() -> bytes:
    raw = settings.master_key
    if not raw:
        raise RuntimeError("TWOFA_MASTER_KEY not set")
    try:
        key = base64.b64decode(raw, validate=True)
    except binascii.Error as exc:
        raise ValueError("TWOFA_MASTER_KEY is not valid base64") from exc
    if len(key) != 32:
        raise ValueError("TWOFA_MASTER_KEY must be 32 bytes (base64-encoded)")
    return key


def generate_key() -> str:
    """New random master key, base64-encoded, for TWOFA_MASTER_KEY."""
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode()


def encrypt(plaintext: str) -> str:
    """Encrypt a string. Returns base64(nonce + ciphertext)."""
    key = _get_key()
    nonce = os.urandom(_NONCE_SIZE)
    ct = AESGCM(key).encrypt(nonce, plaintext.encode(), _AAD)
    return base64.b64encode(nonce + ct).decode()


def decrypt(token: str) -> str:
    """Decrypt a base64(nonce + ciphertext) token back to plaintext."""
    key = _get_key()
    raw = base64.b64decode(token)
    nonce, ct = raw[:_NONCE_SIZE], raw[_NONCE_SIZE:]
    return AESGCM(key).decrypt(nonce, ct, _AAD).decode()
