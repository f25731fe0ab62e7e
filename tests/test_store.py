"""Tests for CredentialStore.

Covers:
  - add: encrypt-then-persist, durable-first insert, validation
  - load: newest-first ordering, replace-on-success, malformed data
  - reveal: per-call decrypt, wrong key, swapped ciphertexts
  - update / remove: persisted first, unchanged on failure
  - session checks, backend timeouts, concurrent load + add
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from securevault.errors import (
    AuthenticationFailure,
    KeyUnavailable,
    PersistenceUnavailable,
    RecordNotFound,
    RecordValidationError,
    Unauthenticated,
)
from securevault.vault.models import DEFAULT_CATEGORY, CredentialRecord
from securevault.vault.persistence import IdentityProvider, InMemoryBackend
from securevault.vault.store import CredentialStore

USER_ID = "user-1"


# ── Helpers ──────────────────────────────────────────────────────────


class StaticIdentity(IdentityProvider):
    """Identity collaborator with a fixed answer."""

    def __init__(self, user_id=USER_ID, authenticated=True):
        self.user_id = user_id
        self.authenticated = authenticated

    def current_user_id(self):
        return self.user_id if self.authenticated else None

    def is_authenticated(self):
        return self.authenticated


class FailingBackend(InMemoryBackend):
    """In-memory backend whose writes can be made to fail."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False
        self.fail_reads = False

    async def list_by_user(self, user_id):
        if self.fail_reads:
            raise ConnectionError("backend unreachable")
        return await super().list_by_user(user_id)

    async def insert(self, record):
        if self.fail_writes:
            raise ConnectionError("backend unreachable")
        return await super().insert(record)

    async def update(self, record):
        if self.fail_writes:
            raise ConnectionError("backend unreachable")
        return await super().update(record)

    async def delete(self, user_id, record_id):
        if self.fail_writes:
            raise ConnectionError("backend unreachable")
        return await super().delete(user_id, record_id)


class SlowBackend(InMemoryBackend):
    async def list_by_user(self, user_id):
        await asyncio.sleep(5)
        return []

    async def insert(self, record):
        await asyncio.sleep(5)
        return record


class GatedBackend(InMemoryBackend):
    """list_by_user snapshots immediately, then waits for the gate."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    async def list_by_user(self, user_id):
        snapshot = await super().list_by_user(user_id)
        self.started.set()
        await self.gate.wait()
        return snapshot


async def _add(store, key, title="GitHub", username="alice", secret="hunter2", **kw):
    return await store.add(title, username, secret, key, **kw)


@pytest.fixture
def store(backend):
    return CredentialStore(StaticIdentity(), backend, timeout=2.0)


# ── add ──────────────────────────────────────────────────────────────


class TestAdd:

    @pytest.mark.asyncio
    async def test_add_persists_and_appends(self, store, backend, master_key):
        record = await _add(store, master_key, url="https://github.com", category="Work")

        assert record in store.records
        assert record.user_id == USER_ID
        assert record.category == "Work"
        assert record.url == "https://github.com"
        assert record.created_at == record.updated_at
        stored = await backend.list_by_user(USER_ID)
        assert [r["id"] for r in stored] == [record.id]

    @pytest.mark.asyncio
    async def test_secret_stored_only_as_ciphertext(self, store, backend, master_key):
        record = await _add(store, master_key, secret="super-secret-value")

        assert b"super-secret-value" not in record.secret_ciphertext
        stored = (await backend.list_by_user(USER_ID))[0]
        assert "super-secret-value" not in repr(stored)

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, store, master_key):
        records = [await _add(store, master_key, title=f"site {i}") for i in range(20)]
        assert len({r.id for r in records}) == 20

    @pytest.mark.asyncio
    @pytest.mark.parametrize("category", [None, "", "   "])
    async def test_default_category(self, store, master_key, category):
        record = await _add(store, master_key, category=category)
        assert record.category == DEFAULT_CATEGORY

    @pytest.mark.asyncio
    async def test_newest_first(self, store, master_key):
        first = await _add(store, master_key, title="first")
        second = await _add(store, master_key, title="second")
        assert store.records == [second, first]

    @pytest.mark.asyncio
    async def test_failed_write_leaves_store_unchanged(self, master_key):
        backend = FailingBackend()
        store = CredentialStore(StaticIdentity(), backend)
        existing = await _add(store, master_key, title="existing")

        backend.fail_writes = True
        with pytest.raises(PersistenceUnavailable) as exc_info:
            await _add(store, master_key, title="orphan")

        assert store.records == [existing]
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title,secret", [("", "pw"), ("  ", "pw"), ("GitHub", "")])
    async def test_validation_happens_before_persistence(self, master_key, title, secret):
        backend = AsyncMock()
        store = CredentialStore(StaticIdentity(), backend)
        with pytest.raises(RecordValidationError):
            await store.add(title, "alice", secret, master_key)
        backend.insert.assert_not_called()
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_whitespace_secret_accepted(self, store, master_key):
        record = await _add(store, master_key, secret="   ")
        assert store.reveal(record, master_key) == "   "

    @pytest.mark.asyncio
    async def test_wiped_key_rejected(self, store):
        from securevault.vault.encryption import MasterKey

        key = MasterKey.generate()
        key.wipe()
        with pytest.raises(KeyUnavailable):
            await _add(store, key)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_timestamps_never_go_backwards(self, store, master_key, monkeypatch):
        import securevault.vault.store as store_mod

        times = iter([
            datetime(2024, 5, 1, 12, 0, 5, tzinfo=timezone.utc),
            datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc),  # clock stepped back
        ])
        monkeypatch.setattr(store_mod, "utcnow", lambda: next(times))

        first = await _add(store, master_key, title="first")
        second = await _add(store, master_key, title="second")
        assert second.created_at >= first.created_at


# ── session and timeouts ─────────────────────────────────────────────


class TestSessionAndTimeouts:

    @pytest.mark.asyncio
    async def test_unauthenticated_add(self, master_key):
        backend = AsyncMock()
        store = CredentialStore(StaticIdentity(authenticated=False), backend)
        with pytest.raises(Unauthenticated):
            await _add(store, master_key)
        backend.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_unauthenticated_load(self):
        backend = AsyncMock()
        store = CredentialStore(StaticIdentity(authenticated=False), backend)
        with pytest.raises(Unauthenticated):
            await store.load()
        backend.list_by_user.assert_not_called()

    @pytest.mark.asyncio
    async def test_locked_session_blocks_writes(self, session, backend, master_key):
        store = CredentialStore(session, backend)
        await _add(store, master_key)
        session.lock()
        with pytest.raises(Unauthenticated):
            await store.load()

    @pytest.mark.asyncio
    async def test_load_timeout(self):
        store = CredentialStore(StaticIdentity(), SlowBackend(), timeout=0.05)
        with pytest.raises(PersistenceUnavailable, match="timed out"):
            await store.load()

    @pytest.mark.asyncio
    async def test_add_timeout_leaves_store_unchanged(self, master_key):
        store = CredentialStore(StaticIdentity(), SlowBackend(), timeout=0.05)
        with pytest.raises(PersistenceUnavailable):
            await _add(store, master_key)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_backend_persistence_error_passes_through(self):
        backend = AsyncMock()
        backend.list_by_user.side_effect = PersistenceUnavailable("down for maintenance")
        store = CredentialStore(StaticIdentity(), backend)
        with pytest.raises(PersistenceUnavailable, match="maintenance"):
            await store.load()


# ── load ─────────────────────────────────────────────────────────────


class TestLoad:

    @pytest.mark.asyncio
    async def test_load_orders_newest_first(self, backend, master_key):
        writer = CredentialStore(StaticIdentity(), backend)
        a = await _add(writer, master_key, title="a")
        b = await _add(writer, master_key, title="b")
        c = await _add(writer, master_key, title="c")

        reader = CredentialStore(StaticIdentity(), backend)
        loaded = await reader.load()
        assert [r.id for r in loaded] == [c.id, b.id, a.id]
        assert reader.records == loaded

    @pytest.mark.asyncio
    async def test_load_sorts_unordered_backend_data(self, master_key):
        t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
        rows = []
        for i, offset in enumerate([1, 3, 2]):
            rows.append(CredentialRecord(
                id=f"r{i}",
                user_id=USER_ID,
                title=f"t{i}",
                username="u",
                secret_ciphertext=b"x",
                created_at=t0 + timedelta(days=offset),
                updated_at=t0 + timedelta(days=offset),
            ).to_dict())
        backend = AsyncMock()
        backend.list_by_user.return_value = rows

        store = CredentialStore(StaticIdentity(), backend)
        loaded = await store.load()
        assert [r.id for r in loaded] == ["r1", "r2", "r0"]

    @pytest.mark.asyncio
    async def test_load_replaces_in_memory_set(self, backend, master_key):
        store = CredentialStore(StaticIdentity(), backend)
        kept = await _add(store, master_key, title="kept")
        gone = await _add(store, master_key, title="gone")
        await backend.delete(USER_ID, gone.id)

        assert await store.load() == [kept]

    @pytest.mark.asyncio
    async def test_failed_load_keeps_previous_set(self, master_key):
        backend = FailingBackend()
        store = CredentialStore(StaticIdentity(), backend)
        record = await _add(store, master_key)

        backend.fail_reads = True
        with pytest.raises(PersistenceUnavailable):
            await store.load()
        assert store.records == [record]

    @pytest.mark.asyncio
    async def test_malformed_record_rejected(self, store, backend, master_key):
        record = await _add(store, master_key)
        bad = record.to_dict()
        bad["id"] = "bad"
        bad["category"] = ""
        backend._records[USER_ID]["bad"] = bad

        with pytest.raises(RecordValidationError):
            await store.load()
        assert store.records == [record]

    @pytest.mark.asyncio
    async def test_foreign_user_record_rejected(self, master_key):
        backend = AsyncMock()
        foreign = CredentialRecord(
            id="x", user_id="someone-else", title="t", username="u", secret_ciphertext=b"x"
        )
        backend.list_by_user.return_value = [foreign.to_dict()]
        store = CredentialStore(StaticIdentity(), backend)
        with pytest.raises(RecordValidationError):
            await store.load()

    @pytest.mark.asyncio
    async def test_add_during_load_is_not_lost(self, master_key):
        backend = GatedBackend()
        store = CredentialStore(StaticIdentity(), backend)

        load_task = asyncio.create_task(store.load())
        await backend.started.wait()

        # The load's snapshot predates this add
        record = await _add(store, master_key)
        backend.gate.set()
        loaded = await load_task

        assert [r.id for r in loaded] == [record.id]
        assert store.records == [record]

    @pytest.mark.asyncio
    async def test_remove_during_load_is_not_resurrected(self, master_key):
        backend = GatedBackend()
        backend.gate.set()
        store = CredentialStore(StaticIdentity(), backend)
        record = await _add(store, master_key)

        backend.gate.clear()
        backend.started.clear()
        load_task = asyncio.create_task(store.load())
        await backend.started.wait()
        await store.remove(record.id)
        backend.gate.set()

        assert await load_task == []
        assert len(store) == 0


# ── reveal ───────────────────────────────────────────────────────────


class TestReveal:

    @pytest.mark.asyncio
    async def test_reveal_by_record_and_id(self, store, master_key):
        record = await _add(store, master_key, secret="hunter2")
        assert store.reveal(record, master_key) == "hunter2"
        assert store.reveal(record.id, master_key) == "hunter2"

    @pytest.mark.asyncio
    async def test_reveal_after_reload(self, backend, master_key):
        writer = CredentialStore(StaticIdentity(), backend)
        await _add(writer, master_key, secret="hunter2")

        reader = CredentialStore(StaticIdentity(), backend)
        (record,) = await reader.load()
        assert reader.reveal(record, master_key) == "hunter2"

    @pytest.mark.asyncio
    async def test_wrong_key(self, store, master_key, other_key):
        record = await _add(store, master_key)
        with pytest.raises(AuthenticationFailure):
            store.reveal(record, other_key)

    @pytest.mark.asyncio
    async def test_unknown_id(self, store, master_key):
        with pytest.raises(RecordNotFound):
            store.reveal("missing", master_key)

    @pytest.mark.asyncio
    async def test_swapped_ciphertext_detected(self, store, master_key):
        import dataclasses

        a = await _add(store, master_key, title="a", secret="secret-a")
        b = await _add(store, master_key, title="b", secret="secret-b")
        forged = dataclasses.replace(a, secret_ciphertext=b.secret_ciphertext)
        with pytest.raises(AuthenticationFailure):
            store.reveal(forged, master_key)

    @pytest.mark.asyncio
    async def test_reveal_does_not_cache_plaintext(self, store, master_key):
        record = await _add(store, master_key, secret="hunter2")
        store.reveal(record, master_key)
        assert "hunter2" not in repr(store.records)
        assert "hunter2" not in repr(vars(store))

    @pytest.mark.asyncio
    async def test_reveal_logs_without_plaintext(self, store, master_key):
        record = await _add(store, master_key, secret="hunter2")
        with capture_logs() as logs:
            store.reveal(record, master_key)
        events = [e for e in logs if e.get("event_type") == "vault.record.revealed"]
        assert events and events[0]["record_id"] == record.id
        assert "hunter2" not in repr(logs)

    @pytest.mark.asyncio
    async def test_failed_decrypt_is_logged(self, store, master_key, other_key):
        record = await _add(store, master_key)
        with capture_logs() as logs:
            with pytest.raises(AuthenticationFailure):
                store.reveal(record, other_key)
        assert any(e.get("event_type") == "vault.decrypt.failed" for e in logs)


# ── update / remove ──────────────────────────────────────────────────


class TestUpdate:

    @pytest.mark.asyncio
    async def test_update_fields(self, store, backend, master_key):
        record = await _add(store, master_key, url="https://old", notes="n")
        updated = await store.update(
            record.id, title="GitHub Enterprise", category="work", url="", notes=""
        )

        assert updated.id == record.id
        assert updated.title == "GitHub Enterprise"
        assert updated.category == "work"
        assert updated.url is None and updated.notes is None
        assert updated.created_at == record.created_at
        assert updated.updated_at >= record.updated_at
        assert store.get(record.id) == updated
        stored = (await backend.list_by_user(USER_ID))[0]
        assert stored["title"] == "GitHub Enterprise"

    @pytest.mark.asyncio
    async def test_update_secret_reencrypts(self, store, master_key):
        record = await _add(store, master_key, secret="old")
        updated = await store.update(record.id, master_key, secret="new")
        assert updated.secret_ciphertext != record.secret_ciphertext
        assert store.reveal(updated, master_key) == "new"

    @pytest.mark.asyncio
    async def test_update_secret_requires_key(self, store, master_key):
        record = await _add(store, master_key)
        with pytest.raises(KeyUnavailable):
            await store.update(record.id, secret="new")

    @pytest.mark.asyncio
    async def test_update_without_changes(self, store, master_key):
        record = await _add(store, master_key)
        assert await store.update(record.id) is record

    @pytest.mark.asyncio
    async def test_update_unknown(self, store):
        with pytest.raises(RecordNotFound):
            await store.update("missing", title="x")

    @pytest.mark.asyncio
    async def test_update_empty_title(self, store, master_key):
        record = await _add(store, master_key)
        with pytest.raises(RecordValidationError):
            await store.update(record.id, title="")

    @pytest.mark.asyncio
    async def test_update_whitespace_secret(self, store, master_key):
        record = await _add(store, master_key)
        updated = await store.update(record.id, master_key, secret=" \t ")
        assert store.reveal(updated, master_key) == " \t "

    @pytest.mark.asyncio
    async def test_failed_update_leaves_store_unchanged(self, master_key):
        backend = FailingBackend()
        store = CredentialStore(StaticIdentity(), backend)
        record = await _add(store, master_key)

        backend.fail_writes = True
        with pytest.raises(PersistenceUnavailable):
            await store.update(record.id, title="changed")
        assert store.get(record.id) == record

    @pytest.mark.asyncio
    async def test_update_keeps_position(self, store, master_key):
        a = await _add(store, master_key, title="a")
        b = await _add(store, master_key, title="b")
        await store.update(a.id, title="a2")
        assert [r.id for r in store.records] == [b.id, a.id]


class TestRemove:

    @pytest.mark.asyncio
    async def test_remove(self, store, backend, master_key):
        a = await _add(store, master_key, title="a")
        b = await _add(store, master_key, title="b")
        await store.remove(a.id)

        assert store.records == [b]
        assert a.id not in store
        assert [r["id"] for r in await backend.list_by_user(USER_ID)] == [b.id]

    @pytest.mark.asyncio
    async def test_remove_unknown(self, store):
        with pytest.raises(RecordNotFound):
            await store.remove("missing")

    @pytest.mark.asyncio
    async def test_failed_remove_leaves_store_unchanged(self, master_key):
        backend = FailingBackend()
        store = CredentialStore(StaticIdentity(), backend)
        record = await _add(store, master_key)

        backend.fail_writes = True
        with pytest.raises(PersistenceUnavailable):
            await store.remove(record.id)
        assert store.records == [record]


class TestQueryAndClear:

    @pytest.mark.asyncio
    async def test_query_delegates_to_engine(self, store, master_key):
        github = await _add(store, master_key, title="GitHub", username="alice", category="Work")
        await _add(store, master_key, title="Bank", username="bob", category="Finance")
        assert store.query(category="work", search_term="GIT") == [github]

    @pytest.mark.asyncio
    async def test_clear(self, store, master_key):
        await _add(store, master_key)
        store.clear()
        assert len(store) == 0
