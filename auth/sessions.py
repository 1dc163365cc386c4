"""
Server-side session tokens.

Tokens are 256-bit ``secrets.token_urlsafe`` strings handed to the client
as bearer tokens.  Only their SHA-256 digest is written to the
``sessions`` table, so a leaked database does not leak live sessions.
TTL is loaded from ``config.session_ttl_seconds``.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auth.errors import SessionExpired, SessionInvalid
from auth.models import Identity, Session
from auth.store import StoreBase, to_identity, as_utc, to_uuid
from config.settings import Settings
from database.models import IdentityRecord, SessionRecord

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class SessionManager(StoreBase):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Settings):
        super().__init__(session_factory, settings)
        self._ttl = timedelta(seconds=settings.session_ttl_seconds)

    async def issue(self, identity_id: str | uuid.UUID) -> Session:
        """Create a session for ``identity_id`` and return it with its raw token."""
        token = secrets.token_urlsafe(TOKEN_BYTES)
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + self._ttl

        async def op() -> None:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        SessionRecord(
                            token_hash=token_digest(token),
                            identity_id=to_uuid(identity_id),
                            issued_at=issued_at,
                            expires_at=expires_at,
                            revoked=False,
                        )
                    )

        await self._guard(op())
        logger.info("Issued session for identity %s (expires %s)", identity_id, expires_at.isoformat())
        return Session(
            token=token,
            identity_id=to_uuid(identity_id),
            issued_at=issued_at,
            expires_at=expires_at,
        )

    async def validate(self, token: str) -> Identity:
        """
        Resolve a token to its identity.

        Raises ``SessionInvalid`` for unknown, revoked or orphaned sessions
        and ``SessionExpired`` once ``expires_at`` has passed (the session is
        revoked on the way out).
        """
        return (await self.resolve(token))[0]

    async def resolve(self, token: str) -> Tuple[Identity, Session]:
        """Like ``validate`` but also returns the session record."""

        async def op() -> Tuple[Optional[Identity], Optional[Session], bool]:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(SessionRecord, token_digest(token))
                    if row is None or row.revoked:
                        return None, None, False
                    if as_utc(row.expires_at) <= datetime.now(timezone.utc):
                        row.revoked = True
                        return None, None, True
                    owner = await session.get(IdentityRecord, row.identity_id)
                    if owner is None:
                        return None, None, False
                    return (
                        to_identity(owner),
                        Session(
                            token=token,
                            identity_id=row.identity_id,
                            issued_at=as_utc(row.issued_at),
                            expires_at=as_utc(row.expires_at),
                        ),
                        False,
                    )

        if not token:
            raise SessionInvalid()
        identity, sess, expired = await self._guard(op())
        if expired:
            logger.info("Session expired and revoked")
            raise SessionExpired()
        if identity is None:
            raise SessionInvalid()
        return identity, sess

    async def revoke(self, token: str) -> None:
        """Revoke one session.  Unknown or already-revoked tokens are fine."""

        async def op() -> int:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(SessionRecord)
                        .where(
                            SessionRecord.token_hash == token_digest(token),
                            SessionRecord.revoked.is_(False),
                        )
                        .values(revoked=True)
                    )
                    return result.rowcount

        if token and await self._guard(op()):
            logger.info("Revoked session")

    async def revoke_all(
        self,
        identity_id: str | uuid.UUID,
        *,
        except_token: Optional[str] = None,
    ) -> int:
        """Revoke every live session of an identity, optionally sparing one."""

        async def op() -> int:
            conditions = [
                SessionRecord.identity_id == to_uuid(identity_id),
                SessionRecord.revoked.is_(False),
            ]
            if except_token:
                conditions.append(SessionRecord.token_hash != token_digest(except_token))
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(SessionRecord).where(*conditions).values(revoked=True)
                    )
                    return result.rowcount

        count = await self._guard(op())
        logger.info("Revoked %d session(s) for identity %s", count, identity_id)
        return count
