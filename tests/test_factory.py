"""
test_factory.py — Tests for settings-driven dispatcher wiring.

Run with:
    pytest tests/test_factory.py -v
"""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest

from backend.app.core.config import Settings
from backend.app.core.errors import ConfigurationError
from backend.app.notifications.channels import (
    FcmPushSender,
    SendGridEmailSender,
    SimulatedEmailSender,
    SimulatedPushSender,
    SimulatedSmsSender,
    TermiiSmsSender,
)
from backend.app.notifications.contacts import InMemoryContactResolver, InMemoryTokenStore
from backend.app.notifications.dispatcher import NotificationDispatcher
from backend.app.notifications.factory import (
    build_attempt_store,
    build_dispatcher,
    build_email_sender,
    build_push_sender,
    build_sms_sender,
    build_token_store,
)
from backend.app.notifications.store import InMemoryAttemptStore


def _make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def _make_client() -> MagicMock:
    return MagicMock(spec=httpx.AsyncClient)


class TestSenderSelection:
    """Provider settings pick the sender implementation."""

    def test_simulation_defaults(self):
        cfg = _make_settings()
        client = _make_client()
        assert isinstance(build_email_sender(cfg, client), SimulatedEmailSender)
        assert isinstance(build_sms_sender(cfg, client), SimulatedSmsSender)
        assert isinstance(build_push_sender(cfg, client), SimulatedPushSender)

    def test_live_providers(self):
        cfg = _make_settings(
            EMAIL_PROVIDER="sendgrid", SENDGRID_API_KEY="SG.k",
            SMS_PROVIDER="termii", TERMII_API_KEY="TL.k",
            PUSH_PROVIDER="fcm", FCM_PROJECT_ID="p", FCM_ACCESS_TOKEN="t",
        )
        client = _make_client()
        assert isinstance(build_email_sender(cfg, client), SendGridEmailSender)
        assert isinstance(build_sms_sender(cfg, client), TermiiSmsSender)
        assert isinstance(build_push_sender(cfg, client), FcmPushSender)

    @pytest.mark.parametrize("setting, builder", [
        ("EMAIL_PROVIDER", build_email_sender),
        ("SMS_PROVIDER", build_sms_sender),
        ("PUSH_PROVIDER", build_push_sender),
    ])
    def test_unsupported_provider(self, setting, builder):
        cfg = _make_settings(**{setting: "carrier_pigeon"})
        with pytest.raises(ConfigurationError) as exc_info:
            builder(cfg, _make_client())
        assert exc_info.value.details["setting"] == setting


class TestBackendSelection:
    """Backend settings pick the store implementations."""

    def test_memory_defaults(self):
        cfg = _make_settings()
        assert isinstance(build_attempt_store(cfg), InMemoryAttemptStore)
        assert isinstance(build_token_store(cfg), InMemoryTokenStore)

    def test_unsupported_store(self):
        with pytest.raises(ConfigurationError):
            build_attempt_store(_make_settings(ATTEMPT_STORE_BACKEND="mongo"))


class TestBuildDispatcher:
    """Test build_dispatcher."""

    def test_defaults(self):
        dispatcher = build_dispatcher(_make_settings(), _make_client())
        assert isinstance(dispatcher, NotificationDispatcher)
        assert isinstance(dispatcher.store, InMemoryAttemptStore)
        assert dispatcher.pending_deliveries == 0

    def test_explicit_collaborators_win(self):
        store = InMemoryAttemptStore()
        contacts = InMemoryContactResolver()
        dispatcher = build_dispatcher(_make_settings(), _make_client(), store=store, contacts=contacts)
        assert dispatcher.store is store
