"""twofa — TOTP two-factor enrollment, verification and backup codes."""

__version__ = "0.1.0"
