"""
store.py — Attempt store: durable notification records keyed by idempotency key.

Contract:
    create(record)                → bool   create-if-absent; False if the key exists
    update_status(key, status, …) → None   forward-only (pending → sent | failed)
    get(key)                      → record | None

The per-channel idempotency key is the primary identifier. Within one
dispatch every key has exactly one writer, so the store only needs its
own create/update atomicity, no cross-record locking.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, String, Text, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base
from backend.app.core.errors import (
    InvalidStatusTransitionError,
    NotFoundError,
    PersistenceError,
)
from backend.app.notifications.models import (
    NotificationChannel,
    NotificationPriority,
    NotificationRecord,
    NotificationStatus,
    NotificationType,
    can_transition,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AttemptStore(ABC):

    @abstractmethod
    async def create(self, record: NotificationRecord) -> bool:
        """Persist ``record`` unless its key exists. Returns True if created."""

    @abstractmethod
    async def update_status(
        self,
        idempotency_key: str,
        status: NotificationStatus,
        reason: Optional[str] = None,
    ) -> None:
        """Move the record to a terminal status."""

    @abstractmethod
    async def get(self, idempotency_key: str) -> Optional[NotificationRecord]:
        """Current state of the record, or None."""


def _check_terminal(status: NotificationStatus) -> None:
    if not status.is_terminal:
        raise ValueError(f"update_status only accepts terminal statuses, got {status.value}")


# ═══════════════════════════════════════════════════════════════════════════
# In-memory store
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryAttemptStore(AttemptStore):
    """Process-local store for development and tests."""

    def __init__(self) -> None:
        self._records: Dict[str, NotificationRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: NotificationRecord) -> bool:
        async with self._lock:
            if record.idempotency_key in self._records:
                return False
            self._records[record.idempotency_key] = copy.deepcopy(record)
            return True

    async def update_status(
        self,
        idempotency_key: str,
        status: NotificationStatus,
        reason: Optional[str] = None,
    ) -> None:
        _check_terminal(status)
        async with self._lock:
            stored = self._records.get(idempotency_key)
            if stored is None:
                raise NotFoundError("NotificationRecord", idempotency_key=idempotency_key)
            stored.transition(status, reason)

    async def get(self, idempotency_key: str) -> Optional[NotificationRecord]:
        stored = self._records.get(idempotency_key)
        return copy.deepcopy(stored) if stored else None

    def all(self) -> List[NotificationRecord]:
        return [copy.deepcopy(r) for r in self._records.values()]

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


# ═══════════════════════════════════════════════════════════════════════════
# Database store
# ═══════════════════════════════════════════════════════════════════════════

class NotificationRecordRow(Base):
    __tablename__ = "notifications"

    idempotency_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    event: Mapped[str] = mapped_column(String(64), nullable=False)
    notification_type: Mapped[str] = mapped_column(String(32), nullable=False)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(Text, default="", nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    metadata_json: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @classmethod
    def from_record(cls, record: NotificationRecord) -> "NotificationRecordRow":
        return cls(
            idempotency_key=record.idempotency_key,
            id=record.id,
            user_id=record.user_id,
            event=record.event,
            notification_type=record.notification_type.value,
            channel=record.channel.value,
            title=record.title,
            message=record.message,
            priority=record.priority.value,
            status=record.status.value,
            is_read=record.is_read,
            metadata_json=dict(record.metadata),
            failure_reason=record.failure_reason,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def to_record(self) -> NotificationRecord:
        return NotificationRecord(
            id=self.id,
            user_id=self.user_id,
            event=self.event,
            notification_type=NotificationType(self.notification_type),
            channel=NotificationChannel(self.channel),
            title=self.title,
            message=self.message,
            priority=NotificationPriority(self.priority),
            idempotency_key=self.idempotency_key,
            status=NotificationStatus(self.status),
            is_read=self.is_read,
            metadata=dict(self.metadata_json or {}),
            created_at=self.created_at,
            updated_at=self.updated_at,
            failure_reason=self.failure_reason,
        )


class SqlAttemptStore(AttemptStore):
    """SQLAlchemy-backed store; the primary key enforces create-if-absent."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, record: NotificationRecord) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    existing = await session.get(NotificationRecordRow, record.idempotency_key)
                    if existing is not None:
                        return False
                    session.add(NotificationRecordRow.from_record(record))
        except IntegrityError:
            # Lost a race with a concurrent create for the same key
            logger.info(
                "Notification %s already exists", record.idempotency_key,
                extra={"idempotency_key": record.idempotency_key},
            )
            return False
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc), idempotency_key=record.idempotency_key) from exc
        return True

    async def update_status(
        self,
        idempotency_key: str,
        status: NotificationStatus,
        reason: Optional[str] = None,
    ) -> None:
        _check_terminal(status)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(NotificationRecordRow)
                        .where(NotificationRecordRow.idempotency_key == idempotency_key)
                        .with_for_update()
                    )
                    row = result.scalar_one_or_none()
                    if row is None:
                        raise NotFoundError("NotificationRecord", idempotency_key=idempotency_key)
                    current = NotificationStatus(row.status)
                    if not can_transition(current, status):
                        raise InvalidStatusTransitionError(
                            idempotency_key, current.value, status.value
                        )
                    row.status = status.value
                    row.failure_reason = reason
                    row.updated_at = _now()
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc), idempotency_key=idempotency_key) from exc

    async def get(self, idempotency_key: str) -> Optional[NotificationRecord]:
        try:
            async with self._session_factory() as session:
                row = await session.get(NotificationRecordRow, idempotency_key)
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc), idempotency_key=idempotency_key) from exc
        return row.to_record() if row else None
