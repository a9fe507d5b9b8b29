"""
events.py — Static event configuration.

Each supported event type maps to its notification type and priority.
An event missing from the table is a configuration error: the request is
rejected before any contact lookup or record is created.

    Event                   Type          Priority
    ──────────────────────  ────────────  ────────
    account_created         account       medium
    password_reset          security      high
    login_alert             security      high
    wallet_funded           transaction   medium
    transaction_successful  transaction   high
    transaction_failed      transaction   high
    promo_offer             marketing     low
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

from backend.app.core.errors import UnknownEventError
from backend.app.notifications.models import (
    EventConfig,
    NotificationPriority,
    NotificationType,
)

EVENT_CONFIGS: Mapping[str, EventConfig] = MappingProxyType({
    "account_created": EventConfig(NotificationType.ACCOUNT, NotificationPriority.MEDIUM),
    "password_reset": EventConfig(NotificationType.SECURITY, NotificationPriority.HIGH),
    "login_alert": EventConfig(NotificationType.SECURITY, NotificationPriority.HIGH),
    "wallet_funded": EventConfig(NotificationType.TRANSACTION, NotificationPriority.MEDIUM),
    "transaction_successful": EventConfig(NotificationType.TRANSACTION, NotificationPriority.HIGH),
    "transaction_failed": EventConfig(NotificationType.TRANSACTION, NotificationPriority.HIGH),
    "promo_offer": EventConfig(NotificationType.MARKETING, NotificationPriority.LOW),
})


def get_event_config(
    event: str,
    configs: Optional[Mapping[str, EventConfig]] = None,
) -> EventConfig:
    """Look up ``event``; raises :class:`UnknownEventError` if unconfigured."""
    table = EVENT_CONFIGS if configs is None else configs
    config = table.get(event)
    if config is None:
        raise UnknownEventError(event)
    return config
