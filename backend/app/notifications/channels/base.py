"""
base.py — Sender contracts for the transport-backed channels.

Every sender reports a plain bool: True when the provider accepted the
message. Senders may also raise; the dispatcher turns any exception into
a failed record carrying the exception message.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping


class EmailSender(ABC):

    @abstractmethod
    async def send(self, address: str, body: str, subject: str) -> bool:
        """Send an HTML email."""


class SmsSender(ABC):

    @abstractmethod
    async def send(self, phone_number: str, body: str) -> bool:
        """Send a plain-text SMS to an already-normalized number."""


class PushSender(ABC):

    @abstractmethod
    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> bool:
        """Send a push notification; ``data`` values are strings."""
