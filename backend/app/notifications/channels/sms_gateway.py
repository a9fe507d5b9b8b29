"""
sms_gateway.py — SMS delivery channel via gateway integration.

Providers:
    • "simulation" — logs the message and reports acceptance (dev default)
    • "termii"     — Termii SMS API (Nigerian routes)

═══════════════════════════════════════════════════════════════════════════
TERMII REQUEST
═══════════════════════════════════════════════════════════════════════════

    POST https://api.ng.termii.com/api/sms/send

    {
      "to": "2348031234567",      ← normalized by the dispatcher
      "from": TERMII_SENDER_ID,
      "sms": body,
      "type": "plain",
      "channel": "generic",
      "api_key": TERMII_API_KEY
    }

A response carrying a ``message_id`` means the gateway accepted the SMS.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from backend.app.notifications.channels.base import SmsSender

logger = logging.getLogger(__name__)

TERMII_API_URL = "https://api.ng.termii.com/api/sms/send"

# Maximum single-segment SMS length (GSM 7-bit)
SMS_MAX_GSM7 = 160


def segment_count(body: str) -> int:
    return max(1, 1 + (len(body) - 1) // SMS_MAX_GSM7)


class SimulatedSmsSender(SmsSender):
    """Logs instead of sending."""

    async def send(self, phone_number: str, body: str) -> bool:
        logger.info(
            "[SMS] → %s: %d chars, %d segment(s) → '%s'",
            phone_number, len(body), segment_count(body),
            body[:80] + ("..." if len(body) > 80 else ""),
            extra={"channel": "sms"},
        )
        return True


class TermiiSmsSender(SmsSender):
    """Termii sender over a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: Optional[str],
        sender_id: str = "N-Alert",
        api_url: str = TERMII_API_URL,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._sender_id = sender_id
        self._api_url = api_url

    def _build_payload(self, phone_number: str, body: str) -> Dict[str, Any]:
        return {
            "to": phone_number,
            "from": self._sender_id,
            "sms": body,
            "type": "plain",
            "channel": "generic",
            "api_key": self._api_key,
        }

    async def send(self, phone_number: str, body: str) -> bool:
        if not self._api_key:
            logger.error("TERMII_API_KEY not configured")
            return False

        try:
            response = await self._client.post(
                self._api_url,
                json=self._build_payload(phone_number, body),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Termii error: %s %s",
                exc.response.status_code, exc.response.text,
                extra={"channel": "sms", "status_code": exc.response.status_code},
            )
            return False
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Termii error: %s", exc, extra={"channel": "sms"})
            return False

        logger.debug("Termii response: %s", data)
        return isinstance(data, dict) and bool(data.get("message_id"))
