"""otpauth:// provisioning URIs and QR rendering for authenticator enrollment."""

from __future__ import annotations

import base64
import io
from typing import Protocol
from urllib.parse import quote, urlsplit

import qrcode
import qrcode.constants
from qrcode.image.pil import PilImage

from twofa.auth.totp import DEFAULT_DIGITS, DEFAULT_TIME_STEP, Secret, as_secret
from twofa.errors import InvalidLabelError, InvalidParameterError

_ERROR_CORRECTION = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}


class QRRenderer(Protocol):
    def __call__(self, payload: str) -> str: ...


def _check_label(name: str, value: str) -> None:
    if not value or not value.strip():
        raise InvalidLabelError(f"{name} must not be empty")
    if ":" in value:
        raise InvalidLabelError(f"{name} must not contain ':' ({value!r})")


def build_provisioning_uri(
    issuer_label: str,
    account_label: str,
    secret: Secret | str,
    digits: int = DEFAULT_DIGITS,
    time_step: int = DEFAULT_TIME_STEP,
    digest: str = "sha1",
) -> str:
    """Get the otpauth:// URI for QR code enrollment.

    Any standard authenticator app understands the result. ``algorithm`` is
    only included for non-SHA1 digests since several apps ignore or reject it.
    """
    _check_label("issuer_label", issuer_label)
    _check_label("account_label", account_label)
    key = as_secret(secret)
    issuer = quote(issuer_label, safe="")
    uri = (
        f"otpauth://totp/{issuer}:{quote(account_label, safe='')}"
        f"?secret={key.base32}&issuer={issuer}&digits={digits}&period={time_step}"
    )
    if digest != "sha1":
        uri += f"&algorithm={digest.upper()}"
    return uri


def authenticator_name(site_url: str, scope: str) -> str:
    """Label shown in the authenticator app: site host/path plus the scope.

    The site URL is used rather than the site name, which may hold characters
    authenticator apps choke on.
    """
    parts = urlsplit(site_url if "//" in site_url else f"//{site_url}")
    base = f"{parts.netloc}{parts.path}".strip("/")
    if not base:
        raise InvalidLabelError(f"Cannot derive a label from site URL {site_url!r}")
    return base.replace("/", "-").replace(":", "-") + f"-{scope}"


def _make_qr(payload: str, error_correction: str, box_size: int, border: int) -> qrcode.QRCode:
    try:
        level = _ERROR_CORRECTION[error_correction.upper()]
    except KeyError:
        raise InvalidParameterError(
            f"Unknown QR error correction level {error_correction!r}; use one of L, M, Q, H"
        ) from None
    qr = qrcode.QRCode(error_correction=level, box_size=box_size, border=border, image_factory=PilImage)
    qr.add_data(payload)
    qr.make(fit=True)
    return qr


def render_qr_png(payload: str, error_correction: str = "M", box_size: int = 6, border: int = 4) -> bytes:
    """Render payload as a PNG QR code."""
    img = _make_qr(payload, error_correction, box_size, border).make_image(
        fill_color="black", back_color="white"
    )
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def render_qr_data_uri(payload: str, error_correction: str = "M", box_size: int = 6, border: int = 4) -> str:
    """Render payload as a ``data:image/png;base64,...`` URI for an <img> tag."""
    png = render_qr_png(payload, error_correction, box_size, border)
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def render_qr_ascii(payload: str, error_correction: str = "M") -> str:
    """Render payload as text blocks for a terminal."""
    out = io.StringIO()
    _make_qr(payload, error_correction, box_size=1, border=2).print_ascii(out=out, invert=True)
    return out.getvalue()
