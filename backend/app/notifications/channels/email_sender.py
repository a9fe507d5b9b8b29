"""
email_sender.py — Email delivery channel.

Providers:
    • "simulation" — logs the message and reports acceptance (dev default)
    • "sendgrid"   — SendGrid Mail Send API v3

═══════════════════════════════════════════════════════════════════════════
SENDGRID REQUEST
═══════════════════════════════════════════════════════════════════════════

    POST https://api.sendgrid.com/v3/mail/send
    Authorization: Bearer <SENDGRID_API_KEY>

    {
      "personalizations": [{"to": [{"email": to}], "subject": subject}],
      "from": {"email": FROM_EMAIL},
      "content": [{"type": "text/html", "value": body}]
    }

SendGrid answers 202 Accepted when it queues the message; any other
status, or a transport error, counts as a rejected send.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from backend.app.notifications.channels.base import EmailSender

logger = logging.getLogger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"


class SimulatedEmailSender(EmailSender):
    """Logs instead of sending."""

    async def send(self, address: str, body: str, subject: str) -> bool:
        logger.info(
            "[EMAIL] → %s: Subject='%s' (%d chars)",
            address, subject, len(body),
            extra={"channel": "email"},
        )
        return True


class SendGridEmailSender(EmailSender):
    """SendGrid v3 sender over a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: Optional[str],
        from_email: str = "noreply@yourdomain.com",
        api_url: str = SENDGRID_API_URL,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._from_email = from_email
        self._api_url = api_url

    def _build_payload(self, address: str, body: str, subject: str) -> Dict[str, Any]:
        return {
            "personalizations": [{"to": [{"email": address}], "subject": subject}],
            "from": {"email": self._from_email},
            "content": [{"type": "text/html", "value": body}],
        }

    async def send(self, address: str, body: str, subject: str) -> bool:
        if not self._api_key:
            logger.error("SENDGRID_API_KEY not configured")
            return False

        try:
            response = await self._client.post(
                self._api_url,
                json=self._build_payload(address, body, subject),
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            logger.error("SendGrid error: %s", exc, extra={"channel": "email"})
            return False

        if response.status_code != 202:
            logger.error(
                "SendGrid error: %s %s",
                response.status_code, response.text,
                extra={"channel": "email", "status_code": response.status_code},
            )
            return False
        return True
