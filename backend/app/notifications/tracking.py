"""
tracking.py — Waiting for delivery outcomes.

dispatch() returns before deliveries finish. Callers that need a
synchronous answer poll the attempt store by idempotency key until every
record is terminal.

Usage:
    keys = [channel_key(base, c) for c in CHANNELS]
    records = await wait_for_terminal_status(store, keys, timeout=10)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, Optional

from backend.app.notifications.models import NotificationRecord
from backend.app.notifications.store import AttemptStore

logger = logging.getLogger(__name__)


async def snapshot(
    store: AttemptStore,
    keys: Iterable[str],
) -> Dict[str, Optional[NotificationRecord]]:
    """Current record (or None) for each key."""
    keys = list(keys)
    records = await asyncio.gather(*(store.get(key) for key in keys))
    return dict(zip(keys, records))


async def wait_for_terminal_status(
    store: AttemptStore,
    keys: Iterable[str],
    *,
    timeout: float = 30.0,
    poll_interval: float = 0.25,
) -> Dict[str, NotificationRecord]:
    """
    Poll until every key has a record in a terminal status.

    Raises
    ------
    asyncio.TimeoutError
        Some record is still missing or pending after ``timeout`` seconds.
    """
    keys = list(keys)

    async def _poll() -> Dict[str, NotificationRecord]:
        while True:
            current = await snapshot(store, keys)
            if all(r is not None and r.status.is_terminal for r in current.values()):
                return {k: r for k, r in current.items() if r is not None}
            await asyncio.sleep(poll_interval)

    try:
        return await asyncio.wait_for(_poll(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Timed out after %.1fs waiting for %d records", timeout, len(keys))
        raise
