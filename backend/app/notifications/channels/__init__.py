"""
channels — Per-channel delivery backends.

Each transport-backed channel exposes a sender contract (``base``) with a
simulation implementation and one live provider:

    email_sender  — SendGrid
    sms_gateway   — Termii
    push_gateway  — Firebase Cloud Messaging

The in-app channel has no transport. Senders only report acceptance;
address resolution, validation and status bookkeeping live in the
dispatcher.
"""

from backend.app.notifications.channels.base import EmailSender, PushSender, SmsSender
from backend.app.notifications.channels.email_sender import SendGridEmailSender, SimulatedEmailSender
from backend.app.notifications.channels.push_gateway import FcmPushSender, SimulatedPushSender
from backend.app.notifications.channels.sms_gateway import SimulatedSmsSender, TermiiSmsSender

__all__ = [
    "EmailSender",
    "SmsSender",
    "PushSender",
    "SimulatedEmailSender",
    "SendGridEmailSender",
    "SimulatedSmsSender",
    "TermiiSmsSender",
    "SimulatedPushSender",
    "FcmPushSender",
]
