"""Downloadable backup verification code document."""

from __future__ import annotations

import re
from datetime import datetime

from twofa.auth.totp import Secret, TotpEngine

BACKUP_FILE_EXT = ".txt"
_EOL = "\r\n"


def slugify(text: str) -> str:
    """Lowercase, with runs of anything but letters and digits turned into '-'."""
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def backup_filename(scope: str, site_name: str) -> str:
    return f"2FA-backup-code-{scope}-{slugify(site_name)}{BACKUP_FILE_EXT}"


def render_backup_document(
    scope: str,
    secret: Secret | str,
    generated_at: datetime,
    *,
    site_name: str,
    site_url: str,
    engine: TotpEngine | None = None,
    footer: str = "",
) -> str:
    """Plain-text backup document holding the code valid at ``generated_at``.

    Pure: the caller delivers it as an attachment (see ``backup_filename``).
    """
    engine = engine or TotpEngine()
    code = engine.code_at(secret, generated_at)
    lines = [
        f"BACKUP VERIFICATION CODE - {site_url} | {scope}",
        "",
        f"Code: {code}",
        "",
        f"Generated on: {generated_at:%Y-%m-%d %H:%M:%S}",
        "",
        "Print it and keep it in a safe place, like your wallet.",
        "",
        "",
        f"Regards, {site_name}",
        "-----",
    ]
    if footer:
        lines.append(footer)
    return _EOL.join(lines) + _EOL
