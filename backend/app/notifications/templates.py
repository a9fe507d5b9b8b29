"""
templates.py — Template resolution and placeholder rendering.

Templates use ``{{name}}`` placeholders. Dotted names walk nested
mappings in the payload (``{{transaction.reference}}``).

Rendering is best-effort: a placeholder the payload cannot resolve is
left in the output as literal text instead of failing the dispatch.

    render("Hi {{first_name}}, ref {{ref}}", {"first_name": "Ada"})
        → "Hi Ada, ref {{ref}}"
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from backend.app.core.errors import TemplateNotConfiguredError
from backend.app.notifications.models import (
    ChannelTemplate,
    NotificationChannel,
    TemplateSet,
)

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][\w.]*)\s*\}\}")

_MISSING = object()


def _lookup(payload: Mapping[str, Any], path: str) -> Any:
    value: Any = payload
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return _MISSING
        value = value[part]
    return _MISSING if value is None else value


def render_template(template: str, payload: Mapping[str, Any]) -> str:
    """Substitute ``{{placeholders}}`` from ``payload``; unresolved ones stay literal."""
    unresolved = []

    def _substitute(match: "re.Match[str]") -> str:
        value = _lookup(payload, match.group(1))
        if value is _MISSING:
            unresolved.append(match.group(1))
            return match.group(0)
        return str(value)

    rendered = _PLACEHOLDER.sub(_substitute, template)
    if unresolved:
        logger.debug("Unresolved template placeholders left as-is: %s", unresolved)
    return rendered


class TemplateResolver(ABC):
    """Per-event template lookup plus rendering."""

    @abstractmethod
    def get(self, event: str) -> TemplateSet:
        """Template set for ``event``; raises :class:`TemplateNotConfiguredError`."""

    def render(self, template: str, payload: Mapping[str, Any]) -> str:
        return render_template(template, payload)


class StaticTemplateResolver(TemplateResolver):
    """Serves template sets from an in-process table."""

    def __init__(self, templates: Optional[Mapping[str, TemplateSet]] = None) -> None:
        self._templates = dict(DEFAULT_TEMPLATES if templates is None else templates)

    def get(self, event: str) -> TemplateSet:
        template_set = self._templates.get(event)
        if template_set is None:
            raise TemplateNotConfiguredError(event)
        return template_set

    def register(self, template_set: TemplateSet) -> None:
        self._templates[template_set.event] = template_set


# ═══════════════════════════════════════════════════════════════════════════
# Built-in templates
# ═══════════════════════════════════════════════════════════════════════════

def _set(event: str, **by_channel: ChannelTemplate) -> TemplateSet:
    return TemplateSet(
        event=event,
        templates={NotificationChannel(name): tpl for name, tpl in by_channel.items()},
    )


# push has no dedicated template anywhere below: it always uses in_app
DEFAULT_TEMPLATES: Mapping[str, TemplateSet] = {
    "account_created": _set(
        "account_created",
        email=ChannelTemplate(
            subject="Welcome, {{first_name}}!",
            body="<p>Hi {{first_name}},</p><p>Your account is ready. Welcome aboard.</p>",
        ),
        sms=ChannelTemplate(body="Welcome {{first_name}}! Your account is ready."),
        in_app=ChannelTemplate(subject="Welcome", body="Your account is ready, {{first_name}}."),
    ),
    "password_reset": _set(
        "password_reset",
        email=ChannelTemplate(
            subject="Reset your password",
            body=(
                "<p>Hi {{first_name}},</p>"
                "<p>Use code <strong>{{code}}</strong> to reset your password. "
                "It expires in {{expires_in_minutes}} minutes.</p>"
            ),
        ),
        sms=ChannelTemplate(body="Your password reset code is {{code}}. Do not share it."),
        in_app=ChannelTemplate(
            subject="Password reset requested",
            body="A password reset was requested for your account.",
        ),
    ),
    "login_alert": _set(
        "login_alert",
        email=ChannelTemplate(
            subject="New sign-in to your account",
            body="<p>We noticed a sign-in from {{device}} at {{time}}. Not you? Reset your password.</p>",
        ),
        in_app=ChannelTemplate(subject="New sign-in", body="New sign-in from {{device}} at {{time}}."),
    ),
    "wallet_funded": _set(
        "wallet_funded",
        email=ChannelTemplate(
            subject="Wallet funded: {{currency}}{{amount}}",
            body="<p>Your wallet was funded with {{currency}}{{amount}}. New balance: {{currency}}{{balance}}.</p>",
        ),
        sms=ChannelTemplate(body="Wallet credited {{currency}}{{amount}}. Bal: {{currency}}{{balance}}."),
        in_app=ChannelTemplate(subject="Wallet funded", body="{{currency}}{{amount}} added to your wallet."),
    ),
    "transaction_successful": _set(
        "transaction_successful",
        email=ChannelTemplate(
            subject="Transaction successful",
            body="<p>Your transaction {{reference}} of {{currency}}{{amount}} was successful.</p>",
        ),
        sms=ChannelTemplate(body="Txn {{reference}} of {{currency}}{{amount}} successful."),
        in_app=ChannelTemplate(
            subject="Transaction successful",
            body="{{currency}}{{amount}} sent. Ref: {{reference}}.",
        ),
    ),
    "transaction_failed": _set(
        "transaction_failed",
        email=ChannelTemplate(
            subject="Transaction failed",
            body="<p>Your transaction {{reference}} of {{currency}}{{amount}} failed: {{reason}}.</p>",
        ),
        sms=ChannelTemplate(body="Txn {{reference}} of {{currency}}{{amount}} failed."),
        in_app=ChannelTemplate(subject="Transaction failed", body="Transaction {{reference}} failed: {{reason}}."),
    ),
    "promo_offer": _set(
        "promo_offer",
        in_app=ChannelTemplate(subject="{{headline}}", body="{{details}}"),
    ),
}
