"""
factory.py — Builds the dispatcher and its collaborators from settings.

The FastAPI lifespan is the only caller in the application; it owns the
shared HTTP client and closes it on shutdown.

    Setting                 Values
    ──────────────────────  ──────────────────────────
    ATTEMPT_STORE_BACKEND   memory | database
    CONTACT_BACKEND         memory | database
    TOKEN_STORE_BACKEND     memory | redis
    EMAIL_PROVIDER          simulation | sendgrid
    SMS_PROVIDER            simulation | termii
    PUSH_PROVIDER           simulation | fcm
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from backend.app.core.config import Settings
from backend.app.core.errors import ConfigurationError
from backend.app.notifications.channels import (
    EmailSender,
    FcmPushSender,
    PushSender,
    SendGridEmailSender,
    SimulatedEmailSender,
    SimulatedPushSender,
    SimulatedSmsSender,
    SmsSender,
    TermiiSmsSender,
)
from backend.app.notifications.contacts import (
    ContactResolver,
    InMemoryContactResolver,
    InMemoryTokenStore,
    RedisTokenStore,
    SqlContactResolver,
    TokenStore,
)
from backend.app.notifications.dispatcher import NotificationDispatcher
from backend.app.notifications.store import AttemptStore, InMemoryAttemptStore, SqlAttemptStore
from backend.app.notifications.templates import StaticTemplateResolver

logger = logging.getLogger(__name__)


def _unsupported(setting: str, value: str) -> ConfigurationError:
    return ConfigurationError(f"Unsupported {setting}: {value}", setting=setting, value=value)


def build_email_sender(cfg: Settings, client: httpx.AsyncClient) -> EmailSender:
    if cfg.EMAIL_PROVIDER == "simulation":
        return SimulatedEmailSender()
    if cfg.EMAIL_PROVIDER == "sendgrid":
        return SendGridEmailSender(
            client,
            api_key=cfg.SENDGRID_API_KEY,
            from_email=cfg.FROM_EMAIL,
            api_url=cfg.SENDGRID_API_URL,
        )
    raise _unsupported("EMAIL_PROVIDER", cfg.EMAIL_PROVIDER)


def build_sms_sender(cfg: Settings, client: httpx.AsyncClient) -> SmsSender:
    if cfg.SMS_PROVIDER == "simulation":
        return SimulatedSmsSender()
    if cfg.SMS_PROVIDER == "termii":
        return TermiiSmsSender(
            client,
            api_key=cfg.TERMII_API_KEY,
            sender_id=cfg.TERMII_SENDER_ID,
            api_url=cfg.TERMII_API_URL,
        )
    raise _unsupported("SMS_PROVIDER", cfg.SMS_PROVIDER)


def build_push_sender(cfg: Settings, client: httpx.AsyncClient) -> PushSender:
    if cfg.PUSH_PROVIDER == "simulation":
        return SimulatedPushSender()
    if cfg.PUSH_PROVIDER == "fcm":
        return FcmPushSender(
            client,
            project_id=cfg.FCM_PROJECT_ID,
            access_token=cfg.FCM_ACCESS_TOKEN,
            api_url=cfg.FCM_API_URL,
        )
    raise _unsupported("PUSH_PROVIDER", cfg.PUSH_PROVIDER)


def build_attempt_store(cfg: Settings) -> AttemptStore:
    if cfg.ATTEMPT_STORE_BACKEND == "memory":
        return InMemoryAttemptStore()
    if cfg.ATTEMPT_STORE_BACKEND == "database":
        from backend.app.core.database import get_session_factory
        return SqlAttemptStore(get_session_factory())
    raise _unsupported("ATTEMPT_STORE_BACKEND", cfg.ATTEMPT_STORE_BACKEND)


def build_contact_resolver(cfg: Settings) -> ContactResolver:
    if cfg.CONTACT_BACKEND == "memory":
        return InMemoryContactResolver()
    if cfg.CONTACT_BACKEND == "database":
        from backend.app.core.database import get_session_factory
        return SqlContactResolver(get_session_factory())
    raise _unsupported("CONTACT_BACKEND", cfg.CONTACT_BACKEND)


def build_token_store(cfg: Settings) -> TokenStore:
    if cfg.TOKEN_STORE_BACKEND == "memory":
        return InMemoryTokenStore()
    if cfg.TOKEN_STORE_BACKEND == "redis":
        from backend.app.core.redis_client import get_redis
        return RedisTokenStore(get_redis(), prefix=cfg.PUSH_TOKEN_KEY_PREFIX)
    raise _unsupported("TOKEN_STORE_BACKEND", cfg.TOKEN_STORE_BACKEND)


def build_dispatcher(
    cfg: Settings,
    client: httpx.AsyncClient,
    *,
    store: Optional[AttemptStore] = None,
    contacts: Optional[ContactResolver] = None,
    token_store: Optional[TokenStore] = None,
) -> NotificationDispatcher:
    """Wire a dispatcher; explicit collaborators override the configured ones."""
    dispatcher = NotificationDispatcher(
        contacts=contacts if contacts is not None else build_contact_resolver(cfg),
        templates=StaticTemplateResolver(),
        store=store if store is not None else build_attempt_store(cfg),
        email_sender=build_email_sender(cfg, client),
        sms_sender=build_sms_sender(cfg, client),
        push_sender=build_push_sender(cfg, client),
        token_store=token_store if token_store is not None else build_token_store(cfg),
        country_code=cfg.DEFAULT_COUNTRY_CODE,
    )
    logger.info(
        "Dispatcher ready: store=%s contacts=%s tokens=%s email=%s sms=%s push=%s",
        cfg.ATTEMPT_STORE_BACKEND, cfg.CONTACT_BACKEND, cfg.TOKEN_STORE_BACKEND,
        cfg.EMAIL_PROVIDER, cfg.SMS_PROVIDER, cfg.PUSH_PROVIDER,
    )
    return dispatcher
