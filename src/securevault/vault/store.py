# Vault - Credential Store
#
# In-memory set of CredentialRecord for the current session, synchronized
# with the persistence collaborator.
#
# Writes are durable-first: the backend must confirm an insert, update or
# delete before the in-memory set changes, and the set is swapped in one
# assignment so a failure never leaves it half-modified.
#
# A load() that is in flight while writes complete replays those writes
# on top of what it fetched, so a confirmed add is never lost to a load
# whose snapshot predates it.

import asyncio
import dataclasses
import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, List, Optional, Tuple, Union

from ..core.event_log import EventType, get_event_logger
from ..errors import (
    AuthenticationFailure,
    KeyUnavailable,
    PersistenceUnavailable,
    RecordNotFound,
    RecordValidationError,
    Unauthenticated,
)
from .encryption import CipherEngine, MasterKey
from .models import CredentialRecord, normalize_category, utcnow
from .persistence import IdentityProvider, PersistenceBackend
from .query import QueryEngine

logger = logging.getLogger(__name__)

DEFAULT_PERSISTENCE_TIMEOUT = 10.0  # seconds

_UPSERT = "upsert"
_REMOVE = "remove"


def _upsert(records: List[CredentialRecord], record: CredentialRecord) -> List[CredentialRecord]:
    """Replace by id in place, or insert keeping newest-first order."""
    out = list(records)
    for i, existing in enumerate(out):
        if existing.id == record.id:
            out[i] = record
            return out
    idx = next(
        (i for i, r in enumerate(out) if r.created_at <= record.created_at),
        len(out),
    )
    out.insert(idx, record)
    return out


def _without(records: List[CredentialRecord], record_id: str) -> List[CredentialRecord]:
    return [r for r in records if r.id != record_id]


def _require_non_empty(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise RecordValidationError(f"{field_name} must be a non-empty string")
    return value


def _require_secret(value: Any) -> str:
    # Whitespace-only secrets are valid
    if not isinstance(value, str) or not value:
        raise RecordValidationError("secret must be a non-empty string")
    return value


class CredentialStore:
    """
    Session-scoped credential collection.

    Args:
        identity: Supplies the current user and session validity
        persistence: Durable backend for records
        cipher: CipherEngine used to seal and open secrets
        timeout: Seconds allowed for each backend call
    """

    def __init__(
        self,
        identity: IdentityProvider,
        persistence: PersistenceBackend,
        cipher: Optional[CipherEngine] = None,
        timeout: Optional[float] = DEFAULT_PERSISTENCE_TIMEOUT,
    ):
        self.identity = identity
        self.persistence = persistence
        self.cipher = cipher or CipherEngine()
        self.timeout = timeout

        self._records: List[CredentialRecord] = []
        self._last_timestamp: Optional[datetime] = None

        # Writes confirmed while a load() is in flight
        self._write_seq = 0
        self._journal: List[Tuple[int, str, Any]] = []
        self._loads_in_flight = 0

    # ── Read access ───────────────────────────────────────────────

    @property
    def records(self) -> List[CredentialRecord]:
        """Snapshot of the in-memory records, newest first."""
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return any(r.id == record_id for r in self._records)

    def get(self, record_id: str) -> CredentialRecord:
        for record in self._records:
            if record.id == record_id:
                return record
        raise RecordNotFound(f"no record with id {record_id}")

    def query(self, category: Optional[str] = None, search_term: str = "") -> List[CredentialRecord]:
        """Filter the current records by category and search term."""
        return QueryEngine.filter(self._records, category, search_term)

    def clear(self) -> None:
        """Drop the in-memory set (e.g. on session lock)."""
        self._records = []

    # ── Internals ─────────────────────────────────────────────────

    def _require_user(self) -> str:
        if not self.identity.is_authenticated():
            raise Unauthenticated("no valid session")
        user_id = self.identity.current_user_id()
        if not user_id:
            raise Unauthenticated("session has no user")
        return user_id

    def _now(self, floor: Optional[datetime] = None) -> datetime:
        """Current UTC time, never earlier than any timestamp issued before."""
        now = utcnow()
        for bound in (self._last_timestamp, floor):
            if bound is not None and now < bound:
                now = bound
        self._last_timestamp = now
        return now

    async def _call(self, operation: str, awaitable: Awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            self._log_persistence_failure(operation, "timeout")
            raise PersistenceUnavailable(
                f"{operation} timed out after {self.timeout}s"
            ) from e
        except PersistenceUnavailable:
            self._log_persistence_failure(operation, "unavailable")
            raise
        except Exception as e:
            self._log_persistence_failure(operation, type(e).__name__)
            raise PersistenceUnavailable(f"{operation} failed: {e}") from e

    def _log_persistence_failure(self, operation: str, reason: str) -> None:
        logger.warning("Persistence %s failed (%s)", operation, reason)
        get_event_logger().log_event(
            EventType.PERSISTENCE_FAILED,
            f"Persistence {operation} failed",
            level="warning",
            operation=operation,
            reason=reason,
        )

    def _confirm(self, op: str, payload: Any) -> None:
        self._write_seq += 1
        if self._loads_in_flight:
            self._journal.append((self._write_seq, op, payload))

    # ── Operations ────────────────────────────────────────────────

    async def load(self) -> List[CredentialRecord]:
        """
        Replace the in-memory set with the user's persisted records.

        Returns:
            Records ordered by created_at, newest first

        Raises:
            Unauthenticated: no valid session
            PersistenceUnavailable: backend failed or timed out
            RecordValidationError: backend returned a malformed record
        """
        user_id = self._require_user()
        started = self._write_seq
        self._loads_in_flight += 1
        try:
            raw = await self._call("load", self.persistence.list_by_user(user_id))
        finally:
            self._loads_in_flight -= 1

        try:
            records = [CredentialRecord.from_dict(item) for item in raw]
            seen = set()
            for record in records:
                if record.user_id != user_id:
                    raise RecordValidationError(f"record {record.id} belongs to another user")
                if record.id in seen:
                    raise RecordValidationError(f"duplicate record id {record.id}")
                seen.add(record.id)
            records.sort(key=lambda r: r.created_at, reverse=True)

            for seq, op, payload in self._journal:
                if seq <= started:
                    continue
                if op == _UPSERT:
                    records = _upsert(records, payload)
                else:
                    records = _without(records, payload)
        finally:
            if not self._loads_in_flight:
                self._journal.clear()

        self._records = records
        get_event_logger().log_event(
            EventType.STORE_LOADED,
            f"Loaded {len(records)} record(s)",
            count=len(records),
        )
        return list(records)

    async def add(
        self,
        title: str,
        username: str,
        plaintext_secret: str,
        key: MasterKey,
        url: Optional[str] = None,
        category: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CredentialRecord:
        """
        Encrypt a secret, persist a new record, then add it to the set.

        Args:
            title: Entry label (e.g. "GitHub")
            username: Account identifier
            plaintext_secret: Secret to encrypt (never stored in plaintext)
            key: Session master key
            url: Optional website URL
            category: Category name; blank means the default category
            notes: Optional notes

        Raises:
            Unauthenticated: no valid session
            RecordValidationError: empty title or secret
            PersistenceUnavailable: the write failed; the set is unchanged
        """
        user_id = self._require_user()
        _require_non_empty(title, "title")
        _require_secret(plaintext_secret)

        record_id = str(uuid.uuid4())
        now = self._now()
        record = CredentialRecord(
            id=record_id,
            user_id=user_id,
            title=title,
            username=username or "",
            secret_ciphertext=self.cipher.encrypt(
                plaintext_secret, key, associated_data=record_id
            ),
            category=normalize_category(category),
            url=url or None,
            notes=notes or None,
            created_at=now,
            updated_at=now,
        )

        await self._call("add", self.persistence.insert(record.to_dict()))

        self._records = _upsert(self._records, record)
        self._confirm(_UPSERT, record)
        get_event_logger().log_event(
            EventType.RECORD_ADDED,
            "Record added",
            record_id=record.id,
            category=record.category,
        )
        return record

    def reveal(self, record: Union[CredentialRecord, str], key: MasterKey) -> str:
        """
        Decrypt a record's secret for one-off use. Nothing is cached.

        Raises:
            RecordNotFound: unknown record id
            AuthenticationFailure: wrong key or corrupt ciphertext
        """
        if isinstance(record, str):
            record = self.get(record)
        try:
            plaintext = self.cipher.decrypt(
                record.secret_ciphertext, key, associated_data=record.id
            )
        except AuthenticationFailure:
            get_event_logger().log_event(
                EventType.DECRYPT_FAILED,
                "Secret failed integrity verification",
                level="warning",
                record_id=record.id,
            )
            raise
        get_event_logger().log_event(
            EventType.RECORD_REVEALED,
            "Record revealed",
            record_id=record.id,
        )
        return plaintext

    async def update(
        self,
        record_id: str,
        key: Optional[MasterKey] = None,
        *,
        title: Optional[str] = None,
        username: Optional[str] = None,
        secret: Optional[str] = None,
        url: Optional[str] = None,
        category: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CredentialRecord:
        """
        Edit fields of an existing record.

        None leaves a field unchanged; an empty string clears ``url`` or
        ``notes``. Changing ``secret`` re-encrypts under ``key`` with a
        fresh nonce.

        Raises:
            Unauthenticated: no valid session
            RecordNotFound: unknown record id
            KeyUnavailable: secret given without a key
            PersistenceUnavailable: the write failed; the set is unchanged
        """
        self._require_user()
        current = self.get(record_id)

        changes = {}
        if title is not None:
            changes["title"] = _require_non_empty(title, "title")
        if username is not None:
            changes["username"] = username
        if url is not None:
            changes["url"] = url or None
        if notes is not None:
            changes["notes"] = notes or None
        if category is not None:
            changes["category"] = normalize_category(category)
        if secret is not None:
            if key is None:
                raise KeyUnavailable("a master key is required to change the secret")
            _require_secret(secret)
            changes["secret_ciphertext"] = self.cipher.encrypt(
                secret, key, associated_data=current.id
            )

        if not changes:
            return current

        updated = dataclasses.replace(
            current, updated_at=self._now(floor=current.updated_at), **changes
        )
        await self._call("update", self.persistence.update(updated.to_dict()))

        self._records = _upsert(self._records, updated)
        self._confirm(_UPSERT, updated)
        get_event_logger().log_event(
            EventType.RECORD_UPDATED,
            "Record updated",
            record_id=updated.id,
            fields=sorted(changes),
        )
        return updated

    async def remove(self, record_id: str) -> None:
        """
        Delete a record immediately (no soft delete).

        Raises:
            Unauthenticated: no valid session
            RecordNotFound: unknown record id
            PersistenceUnavailable: the delete failed; the set is unchanged
        """
        user_id = self._require_user()
        self.get(record_id)

        deleted = await self._call("remove", self.persistence.delete(user_id, record_id))
        if not deleted:
            logger.warning("Record %s was already absent from the backend", record_id)

        self._records = _without(self._records, record_id)
        self._confirm(_REMOVE, record_id)
        get_event_logger().log_event(
            EventType.RECORD_REMOVED,
            "Record removed",
            record_id=record_id,
        )
