"""
Typed request / response structs and domain records for the auth core.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ═══════════════════════════════════════════════════════════════════════════════
# Domain records
# ═══════════════════════════════════════════════════════════════════════════════


class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    username: Optional[str] = None
    email: str
    display_name: Optional[str] = None
    password_hash: str = Field(repr=False)
    created_at: datetime


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str = Field(repr=False)
    identity_id: uuid.UUID
    issued_at: datetime
    expires_at: datetime
    revoked: bool = False


class Credential(BaseModel):
    """Identifier + secret pair; only ever lives for one login attempt."""

    identifier: str = ""
    secret: str = Field(default="", repr=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Outcomes
# ═══════════════════════════════════════════════════════════════════════════════


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    NEEDS_INPUT = "needs_input"


class FieldError(BaseModel):
    field: str
    message: str


class ActionResult(BaseModel):
    """What a core action hands back; the caller turns it into a response."""

    outcome: Outcome
    message: Optional[str] = None
    identity: Optional[Identity] = None
    session: Optional[Session] = None
    field_errors: List[FieldError] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════════
# Action payloads
# ═══════════════════════════════════════════════════════════════════════════════


class LoginRequest(BaseModel):
    identity: str = ""
    credential: str = Field(default="", repr=False)
    redirect: Optional[str] = None

    def to_credential(self) -> Credential:
        return Credential(identifier=self.identity, secret=self.credential)


class RegisterRequest(BaseModel):
    username: Optional[str] = Field(default=None, min_length=2, max_length=64)
    email: str = Field(..., min_length=5, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    display_name: Optional[str] = Field(default=None, max_length=128)
    password: str = Field(..., min_length=4, max_length=128, repr=False)
    password_verify: str = Field(..., repr=False)
    redirect: Optional[str] = None

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return value

    @model_validator(mode="after")
    def check_passwords_match(self) -> "RegisterRequest":
        if self.password != self.password_verify:
            raise ValueError("Passwords do not match")
        return self


class ChangePasswordRequest(BaseModel):
    credential: str = Field(..., min_length=1, repr=False)
    new_credential: str = Field(..., min_length=4, max_length=128, repr=False)
    new_credential_verify: str = Field(..., repr=False)

    @model_validator(mode="after")
    def check_new_passwords_match(self) -> "ChangePasswordRequest":
        if self.new_credential != self.new_credential_verify:
            raise ValueError("Passwords do not match")
        return self


class ChangeEmailRequest(BaseModel):
    new_identity: str = Field(..., min_length=5, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    new_identity_verify: str
    credential: str = Field(..., min_length=1, repr=False)

    @model_validator(mode="after")
    def check_emails_match(self) -> "ChangeEmailRequest":
        if self.new_identity.lower() != self.new_identity_verify.lower():
            raise ValueError("Email addresses do not match")
        return self


class ActionResponse(BaseModel):
    outcome: Outcome
    message: Optional[str] = None
    redirect: Optional[str] = None
    token: Optional[str] = None
    identity: Optional["IdentityView"] = None
    field_errors: List[FieldError] = Field(default_factory=list)


class IdentityView(BaseModel):
    """Public projection of an Identity (no hash)."""

    id: str
    username: Optional[str] = None
    email: str
    display_name: Optional[str] = None

    @classmethod
    def of(cls, identity: Identity) -> "IdentityView":
        return cls(
            id=str(identity.id),
            username=identity.username,
            email=identity.email,
            display_name=identity.display_name,
        )


ActionResponse.model_rebuild()
