"""
FastAPI route: Notification dispatch endpoint.

Provides endpoints to:
    POST /api/v1/notifications                    — dispatch an event on every channel
    GET  /api/v1/notifications/events             — list configured events
    GET  /api/v1/notifications/channels           — list channels
    GET  /api/v1/notifications/{idempotency_key}  — one delivery attempt

POST answers 202 as soon as every record is persisted; deliveries continue
in the background. Poll the returned per-channel keys for final status.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status

from backend.app.api.schemas import (
    DispatchAccepted,
    DispatchRequest,
    EventOut,
    EventsResponse,
    NotificationOut,
)
from backend.app.core.errors import NotFoundError, TemplateNotConfiguredError
from backend.app.notifications.dispatcher import NotificationDispatcher
from backend.app.notifications.models import (
    CHANNELS,
    FALLBACK_CHANNEL,
    NotificationRequest,
    NotificationStatus,
    channel_key,
    derive_base_key,
)

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """The dispatcher built by the application lifespan."""
    return request.app.state.dispatcher


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=DispatchAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Dispatch a notification",
    description=(
        "Expands the event into one record per channel, persists all of them, "
        "then sends on every channel concurrently without waiting for results."
    ),
)
async def dispatch_notification(
    body: DispatchRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    idempotency_key_header: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    """Persist and start delivery of one notification."""
    base_key = body.idempotency_key or idempotency_key_header or derive_base_key(
        body.user_id, body.event, datetime.now(timezone.utc)
    )
    notification = NotificationRequest(
        user_id=body.user_id,
        event=body.event,
        payload=body.payload,
        idempotency_key=base_key,
    )

    await dispatcher.dispatch(notification)

    return DispatchAccepted(
        user_id=body.user_id,
        event=body.event,
        idempotency_key=base_key,
        channel_keys={c.value: channel_key(base_key, c) for c in CHANNELS},
    )


@router.get(
    "/events",
    response_model=EventsResponse,
    summary="List configured events",
)
async def list_events(dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    """Event configuration with the template source for each channel."""
    events = []
    for event, config in dispatcher.event_configs.items():
        try:
            template_set = dispatcher.templates.get(event)
        except TemplateNotConfiguredError:
            channels = {c.value: "missing" for c in CHANNELS}
        else:
            channels = {
                c.value: (
                    "dedicated" if template_set.has_dedicated(c)
                    else "fallback" if template_set.has_dedicated(FALLBACK_CHANNEL)
                    else "missing"
                )
                for c in CHANNELS
            }
        events.append(
            EventOut(
                event=event,
                type=config.notification_type.value,
                priority=config.priority.value,
                channels=channels,
            )
        )
    return EventsResponse(events=events)


@router.get(
    "/channels",
    summary="List channels",
)
async def list_channels():
    """Every dispatch produces one record per channel, in this order."""
    return {
        "channels": [c.value for c in CHANNELS],
        "fallback_template_channel": FALLBACK_CHANNEL.value,
        "statuses": [s.value for s in NotificationStatus],
    }


@router.get(
    "/{idempotency_key}",
    response_model=NotificationOut,
    summary="Get a delivery attempt",
    description="Look up one per-channel record by its idempotency key.",
)
async def get_notification(
    idempotency_key: str,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    record = await dispatcher.store.get(idempotency_key)
    if record is None:
        raise NotFoundError("Notification", idempotency_key=idempotency_key)
    return record.to_dict()
