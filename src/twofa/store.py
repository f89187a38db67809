"""PostgreSQL enrollment store.

Secrets are sealed with AES-256-GCM (see ``twofa.crypto``) when a master key
is configured. Values written before a key was configured stay readable.
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg
import psycopg.rows

from twofa import crypto
from twofa.config import settings
from twofa.enrollment import EnrollmentRecord

logger = logging.getLogger(__name__)

_SEALED_PREFIX = "enc:"

SCHEMA = """
CREATE TABLE IF NOT EXISTS two_factor_auth (
    scope       TEXT        NOT NULL,
    account_id  TEXT        NOT NULL,
    secret      TEXT,
    enabled     BOOLEAN     NOT NULL DEFAULT FALSE,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (scope, account_id)
)
"""


def ensure_schema(conninfo: str | None = None) -> None:
    """Create the two_factor_auth table if it does not exist."""
    with psycopg.connect(conninfo or settings.database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(SCHEMA)
        conn.commit()
    logger.info("two_factor_auth schema ready")


def _seal(secret: str) -> str:
    if not crypto.is_configured():
        return secret
    return _SEALED_PREFIX + crypto.encrypt(secret)


def _open(value: str | None) -> str | None:
    if value is None or not value.startswith(_SEALED_PREFIX):
        return value
    return crypto.decrypt(value[len(_SEALED_PREFIX):])


class PostgresEnrollmentStore:
    """Enrollment records in the two_factor_auth table.

    Opens a connection per call, like the synchronous helpers elsewhere in
    the project. The compare-and-set runs under a row lock so concurrent
    processes cannot overwrite each other's secret.
    """

    def __init__(self, conninfo: str | None = None) -> None:
        self.conninfo = conninfo or settings.database_url

    def _connect(self) -> psycopg.Connection[dict[str, Any]]:
        return psycopg.connect(self.conninfo, row_factory=psycopg.rows.dict_row)

    def get(self, scope: str, account_id: str) -> EnrollmentRecord | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT secret, enabled FROM two_factor_auth WHERE scope = %s AND account_id = %s",
                    (scope, account_id),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return EnrollmentRecord(
            scope=scope,
            account_id=account_id,
            secret=_open(row["secret"]),
            enabled=row["enabled"],
        )

    def compare_and_set_secret(
        self, scope: str, account_id: str, expected: str | None, new: str
    ) -> str:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """INSERT INTO two_factor_auth (scope, account_id)
                       VALUES (%s, %s)
                       ON CONFLICT (scope, account_id) DO NOTHING""",
                    (scope, account_id),
                )
                cur.execute(
                    """SELECT secret FROM two_factor_auth
                       WHERE scope = %s AND account_id = %s
                       FOR UPDATE""",
                    (scope, account_id),
                )
                row = cur.fetchone()
                current = _open(row["secret"]) if row else None
                if current == expected:
                    cur.execute(
                        """UPDATE two_factor_auth SET secret = %s, updated_at = now()
                           WHERE scope = %s AND account_id = %s""",
                        (_seal(new), scope, account_id),
                    )
                    current = new
                else:
                    logger.info("Secret for %s/%s changed concurrently, keeping stored one", scope, account_id)
            conn.commit()
        return current

    def set_enabled(self, scope: str, account_id: str, enabled: bool) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """INSERT INTO two_factor_auth (scope, account_id, enabled)
                       VALUES (%s, %s, %s)
                       ON CONFLICT (scope, account_id) DO UPDATE SET
                           enabled = EXCLUDED.enabled,
                           updated_at = now()""",
                    (scope, account_id, enabled),
                )
            conn.commit()
