"""Tests for provisioning URIs and QR rendering."""

from __future__ import annotations

import base64
from urllib.parse import parse_qs, urlsplit

import pytest

from twofa.auth.provisioning import (
    authenticator_name,
    build_provisioning_uri,
    render_qr_ascii,
    render_qr_data_uri,
)
from twofa.auth.totp import Secret
from twofa.errors import InvalidLabelError, InvalidParameterError

SECRET = Secret(b"12345678901234567890")


def test_uri_format():
    uri = build_provisioning_uri("ACME", "alice@example.com", SECRET)
    assert uri == (
        "otpauth://totp/ACME:alice%40example.com"
        "?secret=GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ&issuer=ACME&digits=6&period=30"
    )


def test_uri_percent_encodes_labels():
    uri = build_provisioning_uri("My Site", "bob smith", SECRET, digits=8, time_step=60)
    parts = urlsplit(uri)
    assert parts.path == "/My%20Site:bob%20smith"
    query = parse_qs(parts.query)
    assert query["issuer"] == ["My Site"]
    assert query["digits"] == ["8"]
    assert query["period"] == ["60"]


def test_uri_algorithm_only_for_non_sha1():
    assert "algorithm" not in build_provisioning_uri("ACME", "alice", SECRET)
    assert "algorithm=SHA256" in build_provisioning_uri("ACME", "alice", SECRET, digest="sha256")


@pytest.mark.parametrize(
    ("issuer", "account"),
    [("ACME:corp", "alice"), ("ACME", "al:ice"), ("", "alice"), ("ACME", "  ")],
)
def test_bad_labels_rejected(issuer, account):
    with pytest.raises(InvalidLabelError):
        build_provisioning_uri(issuer, account, SECRET)


def test_authenticator_name():
    assert authenticator_name("https://example.com/", "user") == "example.com-user"
    assert authenticator_name("https://example.com/site/", "admin") == "example.com-site-admin"
    assert authenticator_name("http://localhost:8080", "affiliate") == "localhost-8080-affiliate"
    assert authenticator_name("example.org", "user") == "example.org-user"


def test_authenticator_name_is_a_valid_label():
    name = authenticator_name("http://localhost:8080/app", "user")
    build_provisioning_uri("ACME", name, SECRET)


def test_qr_data_uri_is_png():
    data_uri = render_qr_data_uri("otpauth://totp/ACME:alice?secret=ABC")
    prefix = "data:image/png;base64,"
    assert data_uri.startswith(prefix)
    png = base64.b64decode(data_uri[len(prefix):])
    assert png[:8] == b"\x89PNG\r\n\x1a\n"


def test_qr_bad_error_correction():
    with pytest.raises(InvalidParameterError):
        render_qr_data_uri("payload", error_correction="X")


def test_qr_ascii_renders_text():
    text = render_qr_ascii("otpauth://totp/ACME:alice?secret=ABC")
    assert len(text.splitlines()) > 10
