"""
push_gateway.py — Push notification channel.

Providers:
    • "simulation" — logs the notification and reports acceptance (dev default)
    • "fcm"        — Firebase Cloud Messaging HTTP v1 API

═══════════════════════════════════════════════════════════════════════════
FCM REQUEST
═══════════════════════════════════════════════════════════════════════════

    POST https://fcm.googleapis.com/v1/projects/{project_id}/messages:send
    Authorization: Bearer <FCM_ACCESS_TOKEN>

    {
      "message": {
        "token": device_token,
        "notification": {"title": title, "body": body},
        "data": {"key": "string value", ...}
      }
    }

FCM only accepts string values in ``data``; the dispatcher coerces the
notification metadata before it reaches this module.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from backend.app.notifications.channels.base import PushSender

logger = logging.getLogger(__name__)

FCM_API_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"


class SimulatedPushSender(PushSender):
    """Logs instead of sending."""

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> bool:
        logger.info(
            "[PUSH] → %s...: %s (%d data keys)",
            token[:12], title, len(data),
            extra={"channel": "push"},
        )
        return True


class FcmPushSender(PushSender):
    """FCM HTTP v1 sender over a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        project_id: Optional[str],
        access_token: Optional[str],
        api_url: str = FCM_API_URL,
    ) -> None:
        self._client = client
        self._project_id = project_id
        self._access_token = access_token
        self._api_url = api_url

    def _build_payload(
        self,
        token: str,
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> Dict[str, Any]:
        return {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": dict(data),
            }
        }

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> bool:
        if not (self._project_id and self._access_token):
            logger.error("FCM_PROJECT_ID / FCM_ACCESS_TOKEN not configured")
            return False

        try:
            response = await self._client.post(
                self._api_url.format(project_id=self._project_id),
                json=self._build_payload(token, title, body, data),
                headers={"Authorization": f"Bearer {self._access_token}"},
            )
        except httpx.HTTPError as exc:
            logger.error("FCM error: %s", exc, extra={"channel": "push"})
            return False

        if not response.is_success:
            logger.error(
                "FCM error: %s %s",
                response.status_code, response.text,
                extra={"channel": "push", "status_code": response.status_code},
            )
            return False

        logger.info("Push sent to token %s...", token[:12], extra={"channel": "push"})
        return True
