"""
test_stores.py — Tests for the attempt stores and SQL contact resolver.

Covers:
    • InMemoryAttemptStore: create-if-absent, forward-only updates, copies
    • SqlAttemptStore on SQLite (aiosqlite): same contract, row round trip
    • SqlContactResolver: lookup and upsert against the users table

Run with:
    pytest tests/test_stores.py -v
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.database import create_engine_for, init_db
from backend.app.core.errors import (
    InvalidStatusTransitionError,
    NotFoundError,
    PersistenceError,
)
from backend.app.notifications.contacts import SqlContactResolver
from backend.app.notifications.models import (
    Contact,
    NotificationChannel,
    NotificationPriority,
    NotificationRecord,
    NotificationStatus,
    NotificationType,
)
from backend.app.notifications.store import InMemoryAttemptStore, SqlAttemptStore


def _make_record(key: str = "base_email", **overrides) -> NotificationRecord:
    fields = dict(
        user_id="user_1",
        event="wallet_funded",
        notification_type=NotificationType.TRANSACTION,
        channel=NotificationChannel.EMAIL,
        title="Wallet funded",
        message="₦5,000 added",
        priority=NotificationPriority.MEDIUM,
        idempotency_key=key,
        metadata={"amount": "5,000", "nested": {"ref": "T1"}},
    )
    fields.update(overrides)
    return NotificationRecord(**fields)


def _run_sql(tmp_path, scenario):
    """Run ``scenario(session_factory)`` against a fresh SQLite database."""

    async def _main():
        engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'notifications.db'}")
        try:
            await init_db(engine)
            factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            return await scenario(factory)
        finally:
            await engine.dispose()

    return asyncio.run(_main())


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: In-memory store
# ═══════════════════════════════════════════════════════════════════════════

class TestInMemoryAttemptStore:
    """Test InMemoryAttemptStore."""

    def test_create_then_get(self):
        store = InMemoryAttemptStore()

        async def _scenario():
            created = await store.create(_make_record())
            return created, await store.get("base_email")

        created, record = asyncio.run(_scenario())
        assert created is True
        assert record.status is NotificationStatus.PENDING
        assert record.message == "₦5,000 added"

    def test_create_if_absent(self):
        store = InMemoryAttemptStore()

        async def _scenario():
            first = await store.create(_make_record(message="first"))
            second = await store.create(_make_record(message="second"))
            return first, second, await store.get("base_email")

        first, second, record = asyncio.run(_scenario())
        assert (first, second) == (True, False)
        assert record.message == "first"
        assert len(store) == 1

    def test_get_missing(self):
        assert asyncio.run(InMemoryAttemptStore().get("nope")) is None

    def test_update_to_failed(self):
        store = InMemoryAttemptStore()

        async def _scenario():
            await store.create(_make_record())
            await store.update_status("base_email", NotificationStatus.FAILED, "No Email")
            return await store.get("base_email")

        record = asyncio.run(_scenario())
        assert record.status is NotificationStatus.FAILED
        assert record.failure_reason == "No Email"
        assert record.updated_at is not None

    def test_update_terminal_record_rejected(self):
        store = InMemoryAttemptStore()

        async def _scenario():
            await store.create(_make_record())
            await store.update_status("base_email", NotificationStatus.SENT)
            await store.update_status("base_email", NotificationStatus.FAILED, "late")

        with pytest.raises(InvalidStatusTransitionError):
            asyncio.run(_scenario())

    def test_update_unknown_key(self):
        with pytest.raises(NotFoundError):
            asyncio.run(InMemoryAttemptStore().update_status("nope", NotificationStatus.SENT))

    def test_update_to_pending_rejected(self):
        store = InMemoryAttemptStore()

        async def _scenario():
            await store.create(_make_record())
            await store.update_status("base_email", NotificationStatus.PENDING)

        with pytest.raises(ValueError):
            asyncio.run(_scenario())

    def test_stored_copy_isolated(self):
        """Mutating the caller's record does not change the stored one."""
        store = InMemoryAttemptStore()
        record = _make_record()

        async def _scenario():
            await store.create(record)
            record.transition(NotificationStatus.SENT)
            return await store.get("base_email")

        assert asyncio.run(_scenario()).status is NotificationStatus.PENDING

    def test_clear(self):
        store = InMemoryAttemptStore()
        asyncio.run(store.create(_make_record()))
        store.clear()
        assert len(store) == 0
        assert store.all() == []


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: SQL store
# ═══════════════════════════════════════════════════════════════════════════

class TestSqlAttemptStore:
    """SqlAttemptStore against SQLite."""

    def test_round_trip(self, tmp_path):
        async def _scenario(factory):
            store = SqlAttemptStore(factory)
            assert await store.create(_make_record()) is True
            return await store.get("base_email")

        record = _run_sql(tmp_path, _scenario)
        assert record.channel is NotificationChannel.EMAIL
        assert record.notification_type is NotificationType.TRANSACTION
        assert record.priority is NotificationPriority.MEDIUM
        assert record.status is NotificationStatus.PENDING
        assert record.title == "Wallet funded"
        assert record.metadata == {"amount": "5,000", "nested": {"ref": "T1"}}
        assert record.failure_reason is None

    def test_create_if_absent(self, tmp_path):
        async def _scenario(factory):
            store = SqlAttemptStore(factory)
            first = await store.create(_make_record(message="first"))
            second = await store.create(_make_record(message="second"))
            return first, second, await store.get("base_email")

        first, second, record = _run_sql(tmp_path, _scenario)
        assert (first, second) == (True, False)
        assert record.message == "first"

    def test_update_status(self, tmp_path):
        async def _scenario(factory):
            store = SqlAttemptStore(factory)
            await store.create(_make_record())
            await store.update_status("base_email", NotificationStatus.FAILED, "No Email")
            return await store.get("base_email")

        record = _run_sql(tmp_path, _scenario)
        assert record.status is NotificationStatus.FAILED
        assert record.failure_reason == "No Email"
        assert record.updated_at is not None

    def test_terminal_is_final(self, tmp_path):
        async def _scenario(factory):
            store = SqlAttemptStore(factory)
            await store.create(_make_record())
            await store.update_status("base_email", NotificationStatus.SENT)
            with pytest.raises(InvalidStatusTransitionError):
                await store.update_status("base_email", NotificationStatus.FAILED, "late")
            return await store.get("base_email")

        assert _run_sql(tmp_path, _scenario).status is NotificationStatus.SENT

    def test_update_unknown_key(self, tmp_path):
        async def _scenario(factory):
            with pytest.raises(NotFoundError):
                await SqlAttemptStore(factory).update_status("nope", NotificationStatus.SENT)

        _run_sql(tmp_path, _scenario)

    def test_get_missing(self, tmp_path):
        async def _scenario(factory):
            return await SqlAttemptStore(factory).get("nope")

        assert _run_sql(tmp_path, _scenario) is None

    def test_get_database_error_wrapped(self, tmp_path):
        """A missing table surfaces as PersistenceError, like create and update."""

        async def _main():
            engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
            try:
                factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
                await SqlAttemptStore(factory).get("base_email")
            finally:
                await engine.dispose()

        with pytest.raises(PersistenceError) as exc_info:
            asyncio.run(_main())
        assert exc_info.value.status_code == 503


class TestSqlContactResolver:
    """SqlContactResolver against SQLite."""

    def test_missing_user(self, tmp_path):
        async def _scenario(factory):
            return await SqlContactResolver(factory).resolve("ghost")

        assert _run_sql(tmp_path, _scenario) is None

    def test_upsert_then_resolve(self, tmp_path):
        async def _scenario(factory):
            resolver = SqlContactResolver(factory)
            await resolver.upsert("user_1", Contact(email="a@b.com", phone_number="0803"))
            first = await resolver.resolve("user_1")
            await resolver.upsert("user_1", Contact(email="a@b.com", push_token="tok"))
            second = await resolver.resolve("user_1")
            return first, second

        first, second = _run_sql(tmp_path, _scenario)
        assert first == Contact(email="a@b.com", phone_number="0803")
        assert second == Contact(email="a@b.com", push_token="tok")
