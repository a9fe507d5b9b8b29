"""
models.py — Shared data structures for notification dispatch.

Defines:
    • NotificationChannel  — the closed channel set
    • NotificationStatus   — per-record delivery state machine
    • NotificationType / NotificationPriority — event classification
    • NotificationRequest  — the immutable dispatch input
    • Contact              — resolved contact data for a user
    • EventConfig          — static per-event classification
    • ChannelTemplate / TemplateSet — per-channel content templates
    • NotificationRecord   — one delivery attempt on one channel

═══════════════════════════════════════════════════════════════════════════
IDEMPOTENCY KEYS
═══════════════════════════════════════════════════════════════════════════

Every request has a base key: the caller's ``idempotency_key`` if given,
otherwise ``{user_id}_{event}_{epoch_millis}`` taken at dispatch time.
Each record's key is the base suffixed with its channel:

    base = "u-42_wallet_funded_1729339200000"

        email   →  base + "_email"
        sms     →  base + "_sms"
        in_app  →  base + "_in_app"
        push    →  base + "_push"

The per-channel key is the primary identifier at the attempt store, so
re-dispatching with the same base key can never create a second record
for the same channel.

═══════════════════════════════════════════════════════════════════════════
STATUS STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

    pending ──► sent
       │
       └─────► failed

sent and failed are terminal. A record moves exactly once.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from backend.app.core.errors import InvalidStatusTransitionError, TemplateNotConfiguredError


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class NotificationChannel(str, Enum):
    """Delivery channels. Every request expands to all of them."""
    EMAIL  = "email"
    SMS    = "sms"
    IN_APP = "in_app"
    PUSH   = "push"


# Expansion order; also the order records are persisted and spawned in
CHANNELS: Tuple[NotificationChannel, ...] = (
    NotificationChannel.EMAIL,
    NotificationChannel.SMS,
    NotificationChannel.IN_APP,
    NotificationChannel.PUSH,
)

# Channel used when a template set has no entry for the requested channel
FALLBACK_CHANNEL = NotificationChannel.IN_APP


class NotificationStatus(str, Enum):
    """Delivery state per record."""
    PENDING = "pending"   # persisted, send not finished
    SENT    = "sent"      # channel accepted the message
    FAILED  = "failed"    # validation, transport or unexpected failure

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[NotificationStatus] = frozenset(
    {NotificationStatus.SENT, NotificationStatus.FAILED}
)

_TRANSITIONS: Dict[NotificationStatus, FrozenSet[NotificationStatus]] = {
    NotificationStatus.PENDING: TERMINAL_STATUSES,
    NotificationStatus.SENT: frozenset(),
    NotificationStatus.FAILED: frozenset(),
}


def can_transition(current: NotificationStatus, new: NotificationStatus) -> bool:
    """True if ``current → new`` is a forward move."""
    return new in _TRANSITIONS[current]


class NotificationType(str, Enum):
    ACCOUNT     = "account"
    SECURITY    = "security"
    TRANSACTION = "transaction"
    MARKETING   = "marketing"
    SYSTEM      = "system"


class NotificationPriority(str, Enum):
    LOW    = "low"
    MEDIUM = "medium"
    HIGH   = "high"
    URGENT = "urgent"


# ═══════════════════════════════════════════════════════════════════════════
# Idempotency keys
# ═══════════════════════════════════════════════════════════════════════════

def _now() -> datetime:
    return datetime.now(timezone.utc)


def derive_base_key(user_id: str, event: str, dispatched_at: datetime) -> str:
    """Base key for a request that did not carry one."""
    millis = int(dispatched_at.timestamp() * 1000)
    return f"{user_id}_{event}_{millis}"


def channel_key(base_key: str, channel: NotificationChannel) -> str:
    """Per-channel idempotency key."""
    return f"{base_key}_{channel.value}"


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NotificationRequest:
    """
    One logical notification for one user.

    Attributes
    ----------
    user_id : str
    event : str
        Key into the event configuration table.
    payload : mapping
        Template variables. May carry ``email`` / ``phoneNumber`` overrides
        that take precedence over the resolved contact.
    idempotency_key : str | None
        Caller-supplied base key.
    """
    user_id: str
    event: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    idempotency_key: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def base_key(self, dispatched_at: datetime) -> str:
        return self.idempotency_key or derive_base_key(
            self.user_id, self.event, dispatched_at
        )


@dataclass(frozen=True)
class Contact:
    """Contact data for a user. Any field may be missing."""
    email: Optional[str] = None
    phone_number: Optional[str] = None
    push_token: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Contact":
        """Build from a user document (camelCase or snake_case keys)."""
        return cls(
            email=data.get("email") or None,
            phone_number=data.get("phoneNumber") or data.get("phone_number") or None,
            push_token=(
                data.get("fcmToken")
                or data.get("fcm_token")
                or data.get("push_token")
                or None
            ),
        )


@dataclass(frozen=True)
class EventConfig:
    notification_type: NotificationType
    priority: NotificationPriority


@dataclass(frozen=True)
class ChannelTemplate:
    """Subject and body template strings for one channel."""
    body: str
    subject: Optional[str] = None


@dataclass(frozen=True)
class TemplateSet:
    """Per-channel templates for one event, with fallback to ``in_app``."""
    event: str
    templates: Mapping[NotificationChannel, ChannelTemplate]

    def for_channel(self, channel: NotificationChannel) -> ChannelTemplate:
        template = self.templates.get(channel) or self.templates.get(FALLBACK_CHANNEL)
        if template is None:
            raise TemplateNotConfiguredError(self.event, channel.value)
        return template

    def has_dedicated(self, channel: NotificationChannel) -> bool:
        return channel in self.templates


@dataclass
class NotificationRecord:
    """
    One delivery attempt of one notification on one channel.

    Created ``pending`` at expansion time, persisted before any send,
    then moved once to ``sent`` or ``failed`` by reconciliation.
    """
    user_id: str
    event: str
    notification_type: NotificationType
    channel: NotificationChannel
    message: str
    priority: NotificationPriority
    idempotency_key: str
    title: str = ""
    status: NotificationStatus = NotificationStatus.PENDING
    is_read: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_now)
    updated_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    def transition(
        self,
        status: NotificationStatus,
        reason: Optional[str] = None,
        *,
        at: Optional[datetime] = None,
    ) -> None:
        """Move to a terminal status; raises on any backward or repeated move."""
        if not can_transition(self.status, status):
            raise InvalidStatusTransitionError(
                self.idempotency_key, self.status.value, status.value
            )
        self.status = status
        self.failure_reason = reason
        self.updated_at = at or _now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event": self.event,
            "type": self.notification_type.value,
            "channel": self.channel.value,
            "title": self.title,
            "message": self.message,
            "priority": self.priority.value,
            "status": self.status.value,
            "is_read": self.is_read,
            "idempotency_key": self.idempotency_key,
            "metadata": dict(self.metadata),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "failure_reason": self.failure_reason,
        }
