"""
Pydantic schemas for the notification API.

Separated from the route handler so they are reusable across
the codebase (background workers, tests).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class DispatchRequest(BaseModel):
    """Request body for POST /api/v1/notifications."""
    user_id: str = Field(
        ..., min_length=1,
        description="Recipient user identifier",
        examples=["user_42"],
    )
    event: str = Field(
        ..., min_length=1,
        description="Configured event type",
        examples=["wallet_funded"],
    )
    payload: Dict[str, Any] = Field(
        default_factory=dict,
        description=(
            "Template variables. 'email' and 'phoneNumber' override the "
            "user's stored contact for this dispatch."
        ),
        examples=[{"amount": "5,000", "currency": "₦", "balance": "12,500"}],
    )
    idempotency_key: Optional[str] = Field(
        default=None,
        description="Base key; derived from user, event and time when omitted",
    )

    @field_validator("idempotency_key")
    @classmethod
    def _blank_key_is_absent(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class DispatchAccepted(BaseModel):
    """Response for POST /api/v1/notifications."""
    status: str = "accepted"
    user_id: str
    event: str
    idempotency_key: str
    channel_keys: Dict[str, str] = Field(
        ..., description="Per-channel idempotency keys to poll for status",
    )


class NotificationOut(BaseModel):
    """A single persisted delivery attempt."""
    id: str
    user_id: str
    event: str
    type: str
    channel: str
    title: str
    message: str
    priority: str
    status: str
    is_read: bool
    idempotency_key: str
    failure_reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: Optional[str] = None


class EventOut(BaseModel):
    event: str
    type: str
    priority: str
    channels: Dict[str, str] = Field(
        ..., description="Channel → template source ('dedicated' or 'fallback')",
    )


class EventsResponse(BaseModel):
    events: List[EventOut]
