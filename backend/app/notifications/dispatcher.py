"""
dispatcher.py — Core notification dispatch orchestration.

This is the central coordinator that:
    1. Validates the event against the static event configuration
    2. Resolves the user's contact data and the event's template set
    3. Expands the request into one record per channel
    4. Persists every record before any send (the persistence gate)
    5. Sends on every channel concurrently and reconciles each record's status

═══════════════════════════════════════════════════════════════════════════
DISPATCH FLOW
═══════════════════════════════════════════════════════════════════════════

    dispatch(request)
        │
        ├── get_event_config(event)        unknown → UnknownEventError (raised)
        ├── contacts.resolve(user_id)      None    → logged, silent return
        ├── templates.get(event)           missing → TemplateNotConfiguredError
        │
        ├── expand_request(...)            4 pending records
        │
        ├── gather(store.create × 4)       any failure → PersistenceError
        │
        └── spawn task per record ─────►  _deliver(record)     (not awaited)
            new, or stored pending             ├── _send_<channel>
            with no delivery running           └── store.update_status

dispatch() returns once the gate has passed. Deliveries keep running in
the background: completion of the call does not mean delivery, and
callers poll the attempt store (see tracking.py) for terminal status.

═══════════════════════════════════════════════════════════════════════════
PER-CHANNEL POLICY
═══════════════════════════════════════════════════════════════════════════

    Channel   Target                              Missing target
    ───────   ─────────────────────────────────   ─────────────────────
    email     payload.email → contact.email       failed "No Email"
    sms       payload.phoneNumber → contact       failed "No Phone"
              (normalized; bad number →           failed "Invalid phone number")
    in_app    —                                   always sent
    push      contact token → token store         failed "No FCM token"

A sender returning False fails the record without a reason. Any exception
on a channel's path fails only that record, with the exception message
as the reason.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import (
    Any,
    Awaitable,
    Callable,
    Coroutine,
    Dict,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
)

from backend.app.core.errors import PersistenceError, ValidationError
from backend.app.core.logging_config import bind_log_context, reset_log_context
from backend.app.notifications.channels.base import EmailSender, PushSender, SmsSender
from backend.app.notifications.contacts import (
    ContactResolver,
    TokenStore,
    resolve_push_token,
)
from backend.app.notifications.events import EVENT_CONFIGS, get_event_config
from backend.app.notifications.models import (
    CHANNELS,
    Contact,
    EventConfig,
    NotificationChannel,
    NotificationRecord,
    NotificationRequest,
    NotificationStatus,
    TemplateSet,
    channel_key,
)
from backend.app.notifications.phone import DEFAULT_COUNTRY_CODE, normalize_phone
from backend.app.notifications.store import AttemptStore
from backend.app.notifications.templates import TemplateResolver

logger = logging.getLogger(__name__)

REASON_NO_EMAIL = "No Email"
REASON_NO_PHONE = "No Phone"
REASON_INVALID_PHONE = "Invalid phone number"
REASON_NO_PUSH_TOKEN = "No FCM token"
REASON_UNKNOWN = "Unknown error"

DEFAULT_PUSH_TITLE = "Notification"

Outcome = Tuple[NotificationStatus, Optional[str]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# Record Expansion
# ═══════════════════════════════════════════════════════════════════════════

def expand_request(
    request: NotificationRequest,
    config: EventConfig,
    template_set: TemplateSet,
    templates: TemplateResolver,
    *,
    base_key: str,
    created_at: datetime,
) -> List[NotificationRecord]:
    """
    Build one pending record per channel.

    Always returns a record for every channel in ``CHANNELS``, whether or
    not the user has an address for it: a missing address is discovered
    at send time so the failed attempt stays auditable.
    """
    records: List[NotificationRecord] = []
    for channel in CHANNELS:
        template = template_set.for_channel(channel)
        title = templates.render(template.subject, request.payload) if template.subject else ""
        records.append(
            NotificationRecord(
                user_id=request.user_id,
                event=request.event,
                notification_type=config.notification_type,
                channel=channel,
                title=title,
                message=templates.render(template.body, request.payload),
                priority=config.priority,
                idempotency_key=channel_key(base_key, channel),
                metadata=dict(request.payload),
                created_at=created_at,
            )
        )
    return records


def stringify_data(metadata: Mapping[str, Any]) -> Dict[str, str]:
    """Push data payloads only carry strings; nested values become JSON."""
    data: Dict[str, str] = {}
    for key, value in metadata.items():
        if isinstance(value, str):
            data[str(key)] = value
        elif isinstance(value, (Mapping, list, tuple)):
            data[str(key)] = json.dumps(value, default=str)
        else:
            data[str(key)] = str(value)
    return data


def _override(metadata: Mapping[str, Any], key: str) -> Optional[str]:
    value = metadata.get(key)
    return str(value) if value else None


# ═══════════════════════════════════════════════════════════════════════════
# Dispatcher
# ═══════════════════════════════════════════════════════════════════════════

class NotificationDispatcher:
    """
    Expands a notification request into per-channel deliveries.

    All collaborators are injected; the dispatcher owns nothing but the
    set of in-flight delivery tasks.

    Parameters
    ----------
    contacts : ContactResolver
    templates : TemplateResolver
    store : AttemptStore
    email_sender, sms_sender, push_sender : channel senders
    token_store : TokenStore | None
        Secondary push-token lookup.
    event_configs : mapping, optional
        Event table; defaults to ``EVENT_CONFIGS``.
    country_code : str
        Calling code used when normalizing local phone numbers.
    clock : callable
        Source of dispatch timestamps.
    """

    def __init__(
        self,
        *,
        contacts: ContactResolver,
        templates: TemplateResolver,
        store: AttemptStore,
        email_sender: EmailSender,
        sms_sender: SmsSender,
        push_sender: PushSender,
        token_store: Optional[TokenStore] = None,
        event_configs: Optional[Mapping[str, EventConfig]] = None,
        country_code: str = DEFAULT_COUNTRY_CODE,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._contacts = contacts
        self._templates = templates
        self._store = store
        self._email_sender = email_sender
        self._sms_sender = sms_sender
        self._push_sender = push_sender
        self._token_store = token_store
        self._event_configs = EVENT_CONFIGS if event_configs is None else event_configs
        self._country_code = country_code
        self._clock = clock
        self._tasks: Set[asyncio.Task] = set()

        self._senders: Dict[
            NotificationChannel,
            Callable[[NotificationRecord, Contact], Awaitable[Outcome]],
        ] = {
            NotificationChannel.EMAIL: self._send_email,
            NotificationChannel.SMS: self._send_sms,
            NotificationChannel.IN_APP: self._send_in_app,
            NotificationChannel.PUSH: self._send_push,
        }

    @property
    def store(self) -> AttemptStore:
        return self._store

    @property
    def templates(self) -> TemplateResolver:
        return self._templates

    @property
    def event_configs(self) -> Mapping[str, EventConfig]:
        return self._event_configs

    @property
    def pending_deliveries(self) -> int:
        return len(self._tasks)

    # ── Public entry point ──

    async def dispatch(self, request: NotificationRequest) -> None:
        """
        Dispatch ``request`` on every channel.

        Raises
        ------
        UnknownEventError, TemplateNotConfiguredError
            Configuration errors; nothing is persisted.
        PersistenceError
            A record could not be persisted; nothing is sent.
        """
        config = get_event_config(request.event, self._event_configs)

        contact = await self._contacts.resolve(request.user_id)
        if contact is None:
            logger.error(
                "User not found: %s", request.user_id,
                extra={"user_id": request.user_id, "event": request.event},
            )
            return

        template_set = self._templates.get(request.event)

        dispatched_at = self._clock()
        base_key = request.base_key(dispatched_at)
        log_token = bind_log_context(user_id=request.user_id, event=request.event, dispatch_key=base_key)
        try:
            records = expand_request(
                request, config, template_set, self._templates,
                base_key=base_key, created_at=dispatched_at,
            )

            created = await self._persist(records)
            deliveries = await self._select_deliveries(records, created)

            logger.info(
                "Dispatching %s to %s: %d new of %d records [%s]",
                request.event, request.user_id, sum(created), len(records), base_key,
                extra={
                    "user_id": request.user_id,
                    "event": request.event,
                    "idempotency_key": base_key,
                    "record_count": len(records),
                },
            )

            for record in deliveries:
                self._spawn(self._deliver(record, contact), name=record.idempotency_key)
        finally:
            reset_log_context(log_token)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            logger.warning("%d deliveries still running after drain timeout", len(not_done))

    # ── Persistence gate ──

    async def _persist(self, records: List[NotificationRecord]) -> List[bool]:
        results = await asyncio.gather(
            *(self._store.create(record) for record in records),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.error(
                "Persistence failed for %d of %d records", len(failures), len(records),
                extra={"idempotency_key": records[0].idempotency_key if records else None},
            )
            first = failures[0]
            if isinstance(first, PersistenceError):
                raise first
            raise PersistenceError(str(first)) from first
        return [bool(r) for r in results]

    async def _select_deliveries(
        self,
        records: List[NotificationRecord],
        created: List[bool],
    ) -> List[NotificationRecord]:
        """
        New records, plus existing ones left pending by an earlier dispatch
        that never started their delivery (a failed persistence gate).
        """
        in_flight = {task.get_name() for task in self._tasks}
        deliveries: List[NotificationRecord] = []
        for record, is_new in zip(records, created):
            if is_new:
                deliveries.append(record)
                continue

            stored = await self._store.get(record.idempotency_key)
            if (
                stored is not None
                and stored.status is NotificationStatus.PENDING
                and record.idempotency_key not in in_flight
            ):
                logger.info(
                    "Resuming %s: persisted but never sent", record.idempotency_key,
                    extra={"idempotency_key": record.idempotency_key, "channel": record.channel.value},
                )
                deliveries.append(stored)
                continue

            logger.info(
                "Skipping %s: already dispatched", record.idempotency_key,
                extra={"idempotency_key": record.idempotency_key, "channel": record.channel.value},
            )
        return deliveries

    # ── Background delivery ──

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, record: NotificationRecord, contact: Contact) -> None:
        try:
            status, reason = await self._senders[record.channel](record, contact)
        except Exception as exc:
            logger.exception(
                "Failed to send %s for %s", record.channel.value, record.idempotency_key,
                extra={"idempotency_key": record.idempotency_key, "channel": record.channel.value},
            )
            status, reason = NotificationStatus.FAILED, str(exc) or REASON_UNKNOWN

        await self._reconcile(record, status, reason)

    async def _reconcile(
        self,
        record: NotificationRecord,
        status: NotificationStatus,
        reason: Optional[str],
    ) -> None:
        try:
            await self._store.update_status(record.idempotency_key, status, reason)
        except Exception:
            logger.exception(
                "Status update to %s failed for %s", status.value, record.idempotency_key,
                extra={"idempotency_key": record.idempotency_key, "status": status.value},
            )
            return

        record.transition(status, reason)
        log = logger.info if status is NotificationStatus.SENT else logger.warning
        log(
            "%s %s%s", record.idempotency_key, status.value, f" ({reason})" if reason else "",
            extra={
                "idempotency_key": record.idempotency_key,
                "channel": record.channel.value,
                "status": status.value,
                "reason": reason,
            },
        )

    # ── Channel policies ──

    async def _send_email(self, record: NotificationRecord, contact: Contact) -> Outcome:
        address = _override(record.metadata, "email") or contact.email
        if not address:
            return NotificationStatus.FAILED, REASON_NO_EMAIL

        sent = await self._email_sender.send(address, record.message, record.title)
        return (NotificationStatus.SENT if sent else NotificationStatus.FAILED), None

    async def _send_sms(self, record: NotificationRecord, contact: Contact) -> Outcome:
        phone = _override(record.metadata, "phoneNumber") or contact.phone_number
        if not phone:
            return NotificationStatus.FAILED, REASON_NO_PHONE

        try:
            normalized = normalize_phone(phone, self._country_code)
        except ValidationError:
            return NotificationStatus.FAILED, REASON_INVALID_PHONE

        sent = await self._sms_sender.send(normalized, record.message)
        return (NotificationStatus.SENT if sent else NotificationStatus.FAILED), None

    async def _send_in_app(self, record: NotificationRecord, contact: Contact) -> Outcome:
        # The persisted record is the feed entry
        return NotificationStatus.SENT, None

    async def _send_push(self, record: NotificationRecord, contact: Contact) -> Outcome:
        token = await resolve_push_token(record.user_id, contact, self._token_store)
        if not token:
            logger.info(
                "No FCM token for user %s", record.user_id,
                extra={"user_id": record.user_id, "channel": record.channel.value},
            )
            return NotificationStatus.FAILED, REASON_NO_PUSH_TOKEN

        sent = await self._push_sender.send(
            token,
            record.title or DEFAULT_PUSH_TITLE,
            record.message or "",
            stringify_data(record.metadata),
        )
        return (NotificationStatus.SENT if sent else NotificationStatus.FAILED), None
