"""
test_logging.py — Tests for structured logging.

Covers:
    • JSONFormatter: structured delivery fields and request context
    • PrettyFormatter: idempotency key / channel suffix
    • bind_log_context: fields inherited by tasks spawned afterwards

Run with:
    pytest tests/test_logging.py -v
"""

from __future__ import annotations

import asyncio
import json
import logging

from backend.app.core.logging_config import (
    JSONFormatter,
    PrettyFormatter,
    bind_log_context,
    get_request_context,
    set_request_context,
)


def _make_log_record(msg: str = "delivered", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="backend.app.notifications.dispatcher",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test JSONFormatter."""

    def test_structured_fields_copied(self):
        set_request_context()
        record = _make_log_record(channel="sms", idempotency_key="k_sms", status="failed", reason="No Phone")
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "delivered"
        assert entry["channel"] == "sms"
        assert entry["idempotency_key"] == "k_sms"
        assert entry["status"] == "failed"
        assert entry["reason"] == "No Phone"
        assert "context" not in entry

    def test_request_context_included(self):
        set_request_context(request_id="abc", endpoint="/api/v1/notifications")
        try:
            entry = json.loads(JSONFormatter().format(_make_log_record()))
            assert entry["context"]["request_id"] == "abc"
        finally:
            set_request_context()


class TestPrettyFormatter:
    """Test PrettyFormatter."""

    def test_key_and_channel_status(self):
        set_request_context()
        out = PrettyFormatter().format(_make_log_record(idempotency_key="k_push", channel="push", status="sent"))
        assert "<k_push>" in out
        assert "[push:sent]" in out

    def test_dispatch_key_from_context(self):
        set_request_context(dispatch_key="base_1")
        try:
            out = PrettyFormatter().format(_make_log_record())
            assert "<base_1>" in out
        finally:
            set_request_context()


class TestBindLogContext:
    """bind_log_context merges and propagates to later tasks."""

    def test_merge(self):
        set_request_context(request_id="r1")
        try:
            bind_log_context(event="wallet_funded")
            assert get_request_context() == {"request_id": "r1", "event": "wallet_funded"}
        finally:
            set_request_context()

    def test_inherited_by_task(self):
        async def _scenario():
            bind_log_context(dispatch_key="base_2")

            async def _child():
                return get_request_context().get("dispatch_key")

            return await asyncio.create_task(_child())

        assert asyncio.run(_scenario()) == "base_2"
