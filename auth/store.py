"""
CredentialStore — identity persistence on top of async SQLAlchemy.

Each call runs in its own transaction and is bounded by
``config.store_timeout_seconds``.  Uniqueness of usernames and
(case-insensitive) emails is enforced by the database, so concurrent
creates / email changes cannot both win.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Optional, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auth.errors import Conflict, NotFound, StoreUnavailable
from auth.models import Identity
from auth.password import HashRecord
from config.settings import Settings
from database.models import IdentityRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

IDENTITY_FIELDS = ("email", "username")


def to_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return uuid.UUID(value) if isinstance(value, str) else value


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def normalize_email(email: str) -> str:
    return email.strip().lower()


class StoreBase:
    """Shared session factory + timeout handling for the auth repositories."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Settings):
        self._session_factory = session_factory
        self._timeout = settings.store_timeout_seconds

    async def _guard(self, op: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(op, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("%s call timed out after %.1fs", type(self).__name__, self._timeout)
            raise StoreUnavailable() from exc
        except IntegrityError:
            raise
        except (OperationalError, DBAPIError, OSError) as exc:
            # drivers such as asyncpg raise raw socket errors on connect
            logger.error("%s database error: %s", type(self).__name__, exc)
            raise StoreUnavailable() from exc


def to_identity(row: IdentityRecord) -> Identity:
    return Identity(
        id=row.identity_id,
        username=row.username,
        email=row.email,
        display_name=row.display_name,
        password_hash=row.password_hash,
        created_at=as_utc(row.created_at),
    )


class CredentialStore(StoreBase):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Settings):
        super().__init__(session_factory, settings)
        unknown = [f for f in settings.auth_identity_fields if f not in IDENTITY_FIELDS]
        if unknown or not settings.auth_identity_fields:
            raise ValueError(f"Unsupported auth_identity_fields: {settings.auth_identity_fields!r}")
        self.identity_fields = list(settings.auth_identity_fields)

    # ── Lookups ─────────────────────────────────────────────────────────

    async def find_by_identifier(self, identifier: str) -> Identity:
        """
        Look an identity up by each configured identity field in order.

        Raises ``NotFound`` when no field matches.
        """

        async def op() -> Optional[Identity]:
            async with self._session_factory() as session:
                for field in self.identity_fields:
                    if field == "email":
                        clause = IdentityRecord.email_normalized == normalize_email(identifier)
                    else:
                        clause = IdentityRecord.username == identifier.strip()
                    result = await session.execute(select(IdentityRecord).where(clause))
                    row = result.scalar_one_or_none()
                    if row is not None:
                        return to_identity(row)
            return None

        identity = await self._guard(op())
        if identity is None:
            raise NotFound()
        return identity

    async def get(self, identity_id: str | uuid.UUID) -> Identity:
        async def op() -> Optional[Identity]:
            async with self._session_factory() as session:
                row = await session.get(IdentityRecord, to_uuid(identity_id))
                return to_identity(row) if row is not None else None

        identity = await self._guard(op())
        if identity is None:
            raise NotFound()
        return identity

    # ── Mutations ───────────────────────────────────────────────────────

    async def create(
        self,
        *,
        email: str,
        record: HashRecord,
        username: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Identity:
        """Insert a new identity.  Raises ``Conflict`` on a taken username / email."""
        if username is not None:
            username = username.strip() or None

        async def op() -> Identity:
            async with self._session_factory() as session:
                async with session.begin():
                    clause = IdentityRecord.email_normalized == normalize_email(email)
                    if username is not None:
                        clause = clause | (IdentityRecord.username == username)
                    taken = await session.execute(
                        select(IdentityRecord.email_normalized, IdentityRecord.username).where(clause)
                    )
                    clash = taken.first()
                    if clash is not None:
                        if clash.email_normalized == normalize_email(email):
                            raise Conflict("That email is already registered.")
                        raise Conflict("That username is already taken.")

                    row = IdentityRecord(
                        identity_id=uuid.uuid4(),
                        username=username,
                        email=email.strip(),
                        email_normalized=normalize_email(email),
                        display_name=display_name,
                        password_hash=record.encoded,
                        created_at=datetime.now(timezone.utc),
                    )
                    session.add(row)
                    try:
                        await session.flush()
                    except IntegrityError as exc:
                        # lost a race with a concurrent insert
                        raise Conflict() from exc
                    return to_identity(row)

        identity = await self._guard(op())
        logger.info("Created identity %s", identity.id)
        return identity

    async def update_password_hash(self, identity_id: str | uuid.UUID, record: HashRecord) -> None:
        async def op() -> int:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(IdentityRecord)
                        .where(IdentityRecord.identity_id == to_uuid(identity_id))
                        .values(password_hash=record.encoded)
                    )
                    return result.rowcount

        if await self._guard(op()) == 0:
            raise NotFound()

    async def update_email(self, identity_id: str | uuid.UUID, new_email: str) -> None:
        """Raises ``Conflict`` when another identity already uses the address."""

        async def op() -> int:
            async with self._session_factory() as session:
                async with session.begin():
                    try:
                        result = await session.execute(
                            update(IdentityRecord)
                            .where(IdentityRecord.identity_id == to_uuid(identity_id))
                            .values(email=new_email.strip(), email_normalized=normalize_email(new_email))
                        )
                    except IntegrityError as exc:
                        raise Conflict("That email is already registered.") from exc
                    return result.rowcount

        if await self._guard(op()) == 0:
            raise NotFound()
