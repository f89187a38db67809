"""CLI entry point for twofa."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markup import escape

from twofa.config import settings
from twofa.errors import TwoFactorError

console = Console()


def _service() -> Any:
    from twofa.enrollment import EnrollmentService
    from twofa.store import PostgresEnrollmentStore

    return EnrollmentService.from_settings(PostgresEnrollmentStore())


def _handle_errors(fn: Callable[..., None]) -> Callable[..., None]:
    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        try:
            fn(*args, **kwargs)
        except TwoFactorError as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            raise SystemExit(1) from e

    return wrapper


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """twofa — TOTP two-factor authentication management."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
def status() -> None:
    """Show configuration."""
    from twofa import crypto

    console.print("[bold]twofa configuration[/bold]")
    console.print(f"  Database: {settings.database_url.split('@')[-1]}")
    console.print(f"  Site: {settings.site_name} ({settings.site_url})")
    console.print(f"  Issuer: {settings.issuer}")
    console.print(f"  Scopes: {', '.join(settings.scopes)}")
    console.print(f"  TOTP: {settings.digits} digits / {settings.time_step}s / {settings.digest}, window ±{settings.valid_window}")
    console.print(f"  Secrets: {settings.secret_bytes} bytes, encrypted at rest: {'yes' if crypto.is_configured() else 'no'}")


@main.command("init-db")
def init_db() -> None:
    """Create the two_factor_auth table."""
    from twofa.store import ensure_schema

    ensure_schema()
    console.print("[green]Schema ready[/green]")


@main.command("gen-key")
def gen_key() -> None:
    """Print a new master key for TWOFA_MASTER_KEY."""
    from twofa.crypto import generate_key

    console.print(generate_key())


@main.command()
@click.argument("scope")
@click.argument("account_id")
@click.option("--label", default=None, help="Account label shown in the authenticator app.")
@click.option("--show-secret", is_flag=True, help="Also print the Base32 secret for manual entry.")
@click.option("--no-qr", is_flag=True, help="Skip the terminal QR code.")
@_handle_errors
def setup(scope: str, account_id: str, label: str | None, show_secret: bool, no_qr: bool) -> None:
    """Create (or show) the 2FA secret and provisioning URI for an account."""
    from twofa.auth.provisioning import authenticator_name, render_qr_ascii

    service = _service()
    secret = service.get_or_create_secret(scope, account_id)
    uri = service.provisioning_uri(
        scope, account_id, settings.issuer, label or authenticator_name(settings.site_url, scope)
    )
    enabled = service.is_enabled(scope, account_id)

    if not no_qr:
        console.print(render_qr_ascii(uri, settings.qr_error_correction), highlight=False, soft_wrap=True)
    console.print(uri, highlight=False, soft_wrap=True)
    if show_secret:
        console.print(f"Secret: {secret.base32}", highlight=False)
    console.print(f"Status: {'[green]enabled[/green]' if enabled else '[yellow]disabled[/yellow]'}")


@main.command()
@click.argument("scope")
@click.argument("account_id")
@_handle_errors
def enable(scope: str, account_id: str) -> None:
    """Turn on 2FA for an account."""
    _service().set_enabled(scope, account_id, True)
    console.print("[green]2FA enabled[/green]")


@main.command()
@click.argument("scope")
@click.argument("account_id")
@_handle_errors
def disable(scope: str, account_id: str) -> None:
    """Turn off 2FA for an account."""
    _service().set_enabled(scope, account_id, False)
    console.print("[yellow]2FA disabled[/yellow]")


@main.command()
@click.argument("scope")
@click.argument("account_id")
@_handle_errors
def toggle(scope: str, account_id: str) -> None:
    """Flip 2FA on/off for an account."""
    enabled = _service().toggle(scope, account_id)
    console.print("[green]2FA enabled[/green]" if enabled else "[yellow]2FA disabled[/yellow]")


@main.command()
@click.argument("scope")
@click.argument("account_id")
@click.argument("code")
@_handle_errors
def verify(scope: str, account_id: str, code: str) -> None:
    """Check a one-time code for an account."""
    if _service().verify(scope, account_id, code):
        console.print("[green]Code valid[/green]")
    else:
        console.print("[red]Code invalid[/red]")
        raise SystemExit(1)


@main.command()
@click.argument("scope")
@click.argument("account_id")
@click.option(
    "--output",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Directory to write the backup file to.",
)
@_handle_errors
def backup(scope: str, account_id: str, output_dir: Path) -> None:
    """Write the backup verification code document for an account."""
    from twofa.backup import backup_filename, render_backup_document

    service = _service()
    secret = service.get_or_create_secret(scope, account_id)
    text = render_backup_document(
        scope,
        secret,
        datetime.now().astimezone(),
        site_name=settings.site_name,
        site_url=settings.site_url,
        engine=service.engine,
        footer=settings.backup_footer,
    )
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / backup_filename(scope, settings.site_name)
    path.write_text(text, encoding="utf-8", newline="")
    console.print(f"[green]Backup code written to {path}[/green]", highlight=False, soft_wrap=True)


if __name__ == "__main__":
    main()
