"""Exception taxonomy. Every error here is recoverable by the caller."""

from __future__ import annotations


class TwoFactorError(Exception):
    """Base class for all twofa errors."""


class InvalidScopeError(TwoFactorError):
    def __init__(self, scope: str) -> None:
        super().__init__(f'Wrong "{scope}" module!')
        self.scope = scope


class NotEnrolledError(TwoFactorError):
    """No usable secret exists for the account."""


class NoSecretEnrolledError(NotEnrolledError):
    """2FA cannot be turned on before a secret has been created."""


class InvalidEncodingError(TwoFactorError, ValueError):
    """Text is not valid Base32."""


class InvalidSecretError(InvalidEncodingError):
    """Secret is empty or does not decode."""


class InvalidParameterError(TwoFactorError, ValueError):
    """Unsafe or nonsensical configuration value."""


class InvalidLabelError(TwoFactorError, ValueError):
    """Provisioning label is empty or contains a colon."""
