"""
contacts.py — Contact resolution and push-token lookup.

Push tokens are looked up in two tiers:

    1. the token embedded in the user's contact record
    2. a secondary token store keyed by user id

A user with no token at either tier is not an error; the push channel
records it as a failed attempt ("No FCM token") at send time.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import String
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base
from backend.app.notifications.models import Contact

logger = logging.getLogger(__name__)


class ContactResolver(ABC):

    @abstractmethod
    async def resolve(self, user_id: str) -> Optional[Contact]:
        """Current contact data for ``user_id``, or None if the user does not exist."""


class TokenStore(ABC):

    @abstractmethod
    async def lookup_secondary(self, user_id: str) -> Optional[str]:
        """Push token registered for ``user_id`` outside the contact record."""


async def resolve_push_token(
    user_id: str,
    contact: Contact,
    token_store: Optional[TokenStore],
) -> Optional[str]:
    """Contact's embedded token first, then the secondary store."""
    if contact.push_token:
        return contact.push_token
    if token_store is None:
        return None
    return await token_store.lookup_secondary(user_id) or None


# ═══════════════════════════════════════════════════════════════════════════
# In-memory adapters
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryContactResolver(ContactResolver):

    def __init__(self, contacts: Optional[Mapping[str, Contact]] = None) -> None:
        self._contacts: Dict[str, Contact] = dict(contacts or {})

    def add(self, user_id: str, contact: Contact) -> None:
        self._contacts[user_id] = contact

    async def resolve(self, user_id: str) -> Optional[Contact]:
        return self._contacts.get(user_id)


class InMemoryTokenStore(TokenStore):

    def __init__(self, tokens: Optional[Mapping[str, str]] = None) -> None:
        self._tokens: Dict[str, str] = dict(tokens or {})

    def register(self, user_id: str, token: str) -> None:
        self._tokens[user_id] = token

    async def lookup_secondary(self, user_id: str) -> Optional[str]:
        return self._tokens.get(user_id)


# ═══════════════════════════════════════════════════════════════════════════
# Database-backed contacts
# ═══════════════════════════════════════════════════════════════════════════

class UserContactRow(Base):
    """Contact columns of the ``users`` table."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    fcm_token: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    def to_contact(self) -> Contact:
        return Contact(
            email=self.email or None,
            phone_number=self.phone_number or None,
            push_token=self.fcm_token or None,
        )


class SqlContactResolver(ContactResolver):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def resolve(self, user_id: str) -> Optional[Contact]:
        async with self._session_factory() as session:
            row = await session.get(UserContactRow, user_id)
        return row.to_contact() if row else None

    async def upsert(self, user_id: str, contact: Contact) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(UserContactRow, user_id)
                if row is None:
                    row = UserContactRow(id=user_id)
                    session.add(row)
                row.email = contact.email
                row.phone_number = contact.phone_number
                row.fcm_token = contact.push_token


# ═══════════════════════════════════════════════════════════════════════════
# Redis-backed secondary tokens
# ═══════════════════════════════════════════════════════════════════════════

class RedisTokenStore(TokenStore):
    """Reads the ``token`` field of hash ``{prefix}{user_id}``."""

    def __init__(self, client: Any, *, prefix: str = "user_tokens:") -> None:
        self._client = client
        self._prefix = prefix

    def _key(self, user_id: str) -> str:
        return f"{self._prefix}{user_id}"

    async def lookup_secondary(self, user_id: str) -> Optional[str]:
        token = await self._client.hget(self._key(user_id), "token")
        if isinstance(token, bytes):
            token = token.decode("utf-8")
        return token or None

    async def register(self, user_id: str, token: str) -> None:
        await self._client.hset(self._key(user_id), mapping={"token": token})
        logger.debug("Registered push token for %s", user_id)
