"""Per-account 2FA enrollment state: secret, enabled flag, verification.

Records are keyed by ``(scope, account_id)``. The scope and account id are
always passed in explicitly; nothing is read from a session.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Protocol

from pydantic import BaseModel

from twofa.auth.provisioning import QRRenderer, build_provisioning_uri, render_qr_data_uri
from twofa.auth.totp import Secret, Timestamp, TotpEngine
from twofa.config import Settings, settings
from twofa.errors import (
    InvalidEncodingError,
    InvalidParameterError,
    InvalidScopeError,
    NoSecretEnrolledError,
    NotEnrolledError,
)

logger = logging.getLogger(__name__)

AccountId = str | int


class EnrollmentRecord(BaseModel):
    """Stored 2FA state for one account in one scope."""

    scope: str
    account_id: str
    secret: str | None = None
    enabled: bool = False


class EnrollmentStore(Protocol):
    """Persistence for enrollment records. Only reads and upserts."""

    def get(self, scope: str, account_id: str) -> EnrollmentRecord | None: ...

    def compare_and_set_secret(
        self, scope: str, account_id: str, expected: str | None, new: str
    ) -> str:
        """Store ``new`` only if the current secret equals ``expected``.

        Creates the record when missing. Returns the secret stored afterwards.
        """
        ...

    def set_enabled(self, scope: str, account_id: str, enabled: bool) -> None: ...


class InMemoryEnrollmentStore:
    """Dict-backed store for tests and single-process use."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], EnrollmentRecord] = {}
        self._lock = threading.Lock()

    def get(self, scope: str, account_id: str) -> EnrollmentRecord | None:
        with self._lock:
            record = self._records.get((scope, account_id))
            return record.model_copy() if record else None

    def compare_and_set_secret(
        self, scope: str, account_id: str, expected: str | None, new: str
    ) -> str:
        with self._lock:
            record = self._records.setdefault(
                (scope, account_id), EnrollmentRecord(scope=scope, account_id=account_id)
            )
            if record.secret == expected:
                record.secret = new
            return record.secret

    def set_enabled(self, scope: str, account_id: str, enabled: bool) -> None:
        with self._lock:
            record = self._records.setdefault(
                (scope, account_id), EnrollmentRecord(scope=scope, account_id=account_id)
            )
            record.enabled = enabled

    def __len__(self) -> int:
        return len(self._records)


class EnrollmentService:
    """Enable/disable/verify 2FA for accounts across a fixed set of scopes."""

    def __init__(
        self,
        store: EnrollmentStore,
        engine: TotpEngine | None = None,
        scopes: Iterable[str] | None = None,
        legacy_min_secret_bytes: int | None = None,
    ) -> None:
        self.store = store
        self.engine = engine or TotpEngine.from_settings()
        self.scopes = frozenset(scopes if scopes is not None else settings.scopes)
        if not self.scopes:
            raise InvalidParameterError("At least one scope is required")
        self.legacy_min_secret_bytes = (
            legacy_min_secret_bytes
            if legacy_min_secret_bytes is not None
            else settings.legacy_min_secret_bytes
        )
        # key -> (lock, number of callers holding or waiting on it)
        self._locks: dict[tuple[str, str], tuple[threading.Lock, int]] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, store: EnrollmentStore, cfg: Settings | None = None) -> EnrollmentService:
        cfg = cfg or settings
        return cls(
            store,
            engine=TotpEngine.from_settings(cfg),
            scopes=cfg.scopes,
            legacy_min_secret_bytes=cfg.legacy_min_secret_bytes,
        )

    # -- helpers -----------------------------------------------------------

    def _key(self, scope: str, account_id: AccountId) -> tuple[str, str]:
        if scope not in self.scopes:
            raise InvalidScopeError(scope)
        account = str(account_id).strip()
        if not account:
            raise InvalidParameterError("account_id must not be empty")
        return scope, account

    @contextmanager
    def _locked(self, key: tuple[str, str]) -> Iterator[None]:
        with self._locks_guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                lock, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def _usable(self, text: str | None) -> Secret | None:
        """Decode a stored secret; None if missing, malformed or too short."""
        if not text:
            return None
        try:
            secret = Secret.from_base32(text)
        except InvalidEncodingError:
            return None
        if len(secret) < self.legacy_min_secret_bytes:
            return None
        return secret

    def _load(self, key: tuple[str, str]) -> Secret | None:
        record = self.store.get(*key)
        return self._usable(record.secret if record else None)

    # -- operations --------------------------------------------------------

    def get_or_create_secret(self, scope: str, account_id: AccountId) -> Secret:
        """Return the stored secret, creating one on first setup."""
        key = self._key(scope, account_id)
        with self._locked(key):
            record = self.store.get(*key)
            current = record.secret if record else None
            secret = self._usable(current)
            if secret is not None:
                return secret

            if current:
                logger.warning("Replacing unusable 2FA secret for %s/%s", *key)
            if record and record.enabled:
                # the new secret has not been scanned yet
                self.store.set_enabled(*key, False)
                logger.warning("2FA disabled for %s/%s until re-enabled", *key)
            fresh = self.engine.generate_secret()
            stored = self.store.compare_and_set_secret(*key, current, fresh.base32)
            secret = self._usable(stored)
            if secret is None:
                raise NotEnrolledError(f"Could not store a 2FA secret for {key[0]}/{key[1]}")
            if secret == fresh:
                logger.info("Created 2FA secret for %s/%s", *key)
            return secret

    def regenerate_secret(self, scope: str, account_id: AccountId) -> Secret:
        """Replace the secret unconditionally. 2FA is switched off until re-enabled."""
        key = self._key(scope, account_id)
        with self._locked(key):
            record = self.store.get(*key)
            fresh = self.engine.generate_secret()
            self.store.set_enabled(*key, False)
            stored = self.store.compare_and_set_secret(
                *key, record.secret if record else None, fresh.base32
            )
            logger.info("Regenerated 2FA secret for %s/%s", *key)
            return Secret.from_base32(stored)

    def is_enabled(self, scope: str, account_id: AccountId) -> bool:
        key = self._key(scope, account_id)
        record = self.store.get(*key)
        return bool(record and record.enabled and self._usable(record.secret) is not None)

    def set_enabled(self, scope: str, account_id: AccountId, enabled: bool) -> None:
        key = self._key(scope, account_id)
        with self._locked(key):
            self._set_enabled(key, enabled)

    def _set_enabled(self, key: tuple[str, str], enabled: bool) -> None:
        if enabled and self._load(key) is None:
            raise NoSecretEnrolledError(
                f"Cannot enable 2FA for {key[0]}/{key[1]}: no secret has been set up"
            )
        self.store.set_enabled(*key, enabled)
        logger.info("2FA %s for %s/%s", "enabled" if enabled else "disabled", *key)

    def toggle(self, scope: str, account_id: AccountId) -> bool:
        """Flip the enabled flag and return the new value."""
        key = self._key(scope, account_id)
        with self._locked(key):
            record = self.store.get(*key)
            enabled = not (record and record.enabled)
            self._set_enabled(key, enabled)
            return enabled

    def _require_secret(self, key: tuple[str, str]) -> Secret:
        secret = self._load(key)
        if secret is None:
            raise NotEnrolledError(f"No 2FA secret for {key[0]}/{key[1]}")
        return secret

    def verify(
        self, scope: str, account_id: AccountId, submitted: str, now: Timestamp | None = None
    ) -> bool:
        key = self._key(scope, account_id)
        secret = self._require_secret(key)
        ok = self.engine.verify(secret, submitted, now)
        if not ok:
            logger.warning("Failed 2FA verification for %s/%s", *key)
        return ok

    def current_code(self, scope: str, account_id: AccountId, now: Timestamp | None = None) -> str:
        key = self._key(scope, account_id)
        secret = self._require_secret(key)
        if now is None:
            return self.engine.now(secret)
        return self.engine.code_at(secret, now)

    def provisioning_uri(
        self, scope: str, account_id: AccountId, issuer: str, account_label: str
    ) -> str:
        """otpauth:// URI for the account, creating the secret if needed."""
        secret = self.get_or_create_secret(scope, account_id)
        return build_provisioning_uri(
            issuer,
            account_label,
            secret,
            digits=self.engine.digits,
            time_step=self.engine.time_step,
            digest=self.engine.digest,
        )

    def qr_data_uri(
        self,
        scope: str,
        account_id: AccountId,
        issuer: str,
        account_label: str,
        renderer: QRRenderer = render_qr_data_uri,
    ) -> str:
        """Scannable QR image (as a data URI) of the provisioning URI."""
        return renderer(self.provisioning_uri(scope, account_id, issuer, account_label))
