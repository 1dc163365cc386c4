"""
SQLAlchemy ORM models for identities and their sessions.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


class IdentityRecord(Base):
    __tablename__ = "identities"

    identity_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(64), unique=True, nullable=True)
    email = Column(String(255), nullable=False)
    # lower-cased copy of ``email``; carries the case-insensitive unique index
    email_normalized = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(128))
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    sessions = relationship("SessionRecord", back_populates="identity", cascade="all, delete-orphan")


class SessionRecord(Base):
    __tablename__ = "sessions"

    # SHA-256 of the bearer token; the raw token is never stored
    token_hash = Column(String(64), primary_key=True)
    identity_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("identities.identity_id", ondelete="CASCADE"),
        nullable=False,
    )
    issued_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked = Column(Boolean, nullable=False, default=False)

    identity = relationship("IdentityRecord", back_populates="sessions")

    __table_args__ = (
        Index("ix_sessions_identity_active", "identity_id", "revoked"),
    )
