# Vault - Collaborator Interfaces
#
# The vault engine does not own identity or durable storage. It reaches
# them through two small interfaces:
#
#   IdentityProvider    - who is the current user, is the session valid
#   PersistenceBackend  - CRUD store keyed by user id (async)
#
# Records cross the persistence boundary as plain dicts produced by
# CredentialRecord.to_dict(); the ciphertext is opaque base64 text to the
# backend. Two reference backends are provided: an in-memory one for tests
# and development, and a SQLite one using the core WAL connection helper.

import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..core.db import connect as db_connect

logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    """Supplies the current user and whether their session is valid."""

    @abstractmethod
    def current_user_id(self) -> Optional[str]:
        """Return the signed-in user's id, or None."""

    @abstractmethod
    def is_authenticated(self) -> bool:
        """Return True while the session is valid."""


class PersistenceBackend(ABC):
    """Durable record storage keyed by user id.

    Implementations may raise any exception on failure; the store wraps
    them as PersistenceUnavailable.
    """

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[dict]:
        """All records for ``user_id``, newest ``created_at`` first."""

    @abstractmethod
    async def insert(self, record: dict) -> dict:
        """Persist a new record and return it as stored."""

    @abstractmethod
    async def update(self, record: dict) -> dict:
        """Replace an existing record and return it as stored."""

    @abstractmethod
    async def delete(self, user_id: str, record_id: str) -> bool:
        """Delete a record. Returns False if it did not exist."""


def _created_key(record: dict) -> datetime:
    value = record.get("created_at") or ""
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class InMemoryBackend(PersistenceBackend):
    """Process-local backend. Data is lost when the object goes away."""

    def __init__(self):
        self._records: Dict[str, Dict[str, dict]] = {}

    async def list_by_user(self, user_id: str) -> List[dict]:
        records = [dict(r) for r in self._records.get(user_id, {}).values()]
        records.sort(key=_created_key, reverse=True)
        return records

    async def insert(self, record: dict) -> dict:
        user_records = self._records.setdefault(record["user_id"], {})
        if record["id"] in user_records:
            raise ValueError(f"duplicate record id {record['id']}")
        user_records[record["id"]] = dict(record)
        return dict(record)

    async def update(self, record: dict) -> dict:
        user_records = self._records.get(record["user_id"], {})
        if record["id"] not in user_records:
            raise KeyError(record["id"])
        user_records[record["id"]] = dict(record)
        return dict(record)

    async def delete(self, user_id: str, record_id: str) -> bool:
        return self._records.get(user_id, {}).pop(record_id, None) is not None


_COLUMNS = (
    "id",
    "user_id",
    "title",
    "username",
    "secret_ciphertext",
    "url",
    "category",
    "notes",
    "created_at",
    "updated_at",
)


class SQLiteBackend(PersistenceBackend):
    """SQLite-backed record storage.

    Blocking sqlite3 calls run in a worker thread via asyncio.to_thread,
    each on a fresh connection.

    Args:
        db_path: Path to the database file. Defaults to data/vault.db.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = Path(db_path) if db_path else Path("data/vault.db")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        return db_connect(self.db_path, row_factory=True)

    def _init_database(self):
        conn = self._connect()
        try:
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS passwords (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        username TEXT NOT NULL DEFAULT '',
                        secret_ciphertext TEXT NOT NULL,
                        url TEXT,
                        category TEXT NOT NULL DEFAULT 'Personal',
                        notes TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_passwords_user_created
                    ON passwords (user_id, created_at DESC)
                """)
        finally:
            conn.close()

    # ── sync helpers (run in worker thread) ───────────────────────

    def _list_sync(self, user_id: str) -> List[dict]:
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM passwords "
                "WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
                (user_id,),
            ).fetchall()
        finally:
            conn.close()
        return [dict(row) for row in rows]

    def _insert_sync(self, record: dict) -> dict:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    f"INSERT INTO passwords ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                    tuple(record.get(c) for c in _COLUMNS),
                )
        finally:
            conn.close()
        return dict(record)

    def _update_sync(self, record: dict) -> dict:
        assignments = ", ".join(f"{c} = ?" for c in _COLUMNS[2:])
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    f"UPDATE passwords SET {assignments} WHERE id = ? AND user_id = ?",
                    tuple(record.get(c) for c in _COLUMNS[2:])
                    + (record["id"], record["user_id"]),
                )
                if cursor.rowcount == 0:
                    raise KeyError(record["id"])
        finally:
            conn.close()
        return dict(record)

    def _delete_sync(self, user_id: str, record_id: str) -> bool:
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    "DELETE FROM passwords WHERE id = ? AND user_id = ?",
                    (record_id, user_id),
                )
        finally:
            conn.close()
        return cursor.rowcount > 0

    # ── PersistenceBackend ────────────────────────────────────────

    async def list_by_user(self, user_id: str) -> List[dict]:
        return await asyncio.to_thread(self._list_sync, user_id)

    async def insert(self, record: dict) -> dict:
        return await asyncio.to_thread(self._insert_sync, record)

    async def update(self, record: dict) -> dict:
        return await asyncio.to_thread(self._update_sync, record)

    async def delete(self, user_id: str, record_id: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, user_id, record_id)
