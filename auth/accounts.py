"""
AccountMutationService — register, change password, change email.

Every mutation re-checks its pre-conditions (validator, current secret)
before touching the store, and reports through the notifier once it has
been applied.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from auth.collaborators import Notifier, Validator, field_errors_from, send_notification
from auth.engine import AuthContext, AuthenticationEngine
from auth.errors import InvalidOldSecret, InvalidSecret, NotAuthenticated, RegistrationDisabled, ValidationError
from auth.models import (
    ActionResult,
    ChangeEmailRequest,
    ChangePasswordRequest,
    Credential,
    FieldError,
    Identity,
    Outcome,
    RegisterRequest,
)
from auth.password import PasswordHasher
from auth.sessions import SessionManager
from auth.store import CredentialStore
from config.settings import Settings

logger = logging.getLogger(__name__)

Payload = Union[BaseModel, Dict[str, Any]]


class AccountMutationService:
    def __init__(
        self,
        *,
        settings: Settings,
        store: CredentialStore,
        hasher: PasswordHasher,
        sessions: SessionManager,
        engine: AuthenticationEngine,
        validator: Validator,
        notifier: Optional[Notifier] = None,
    ):
        self.settings = settings
        self.store = store
        self.hasher = hasher
        self.sessions = sessions
        self.engine = engine
        self.validator = validator
        self.notifier = notifier

    def _bind(self, payload: Payload, schema):
        errors = self.validator.validate(payload, schema)
        if errors:
            raise ValidationError(field_errors=errors)
        data = payload.model_dump() if isinstance(payload, BaseModel) else payload
        try:
            return schema.model_validate(data)
        except PydanticValidationError as exc:
            # a custom validator let through something the schema rejects
            raise ValidationError(field_errors=field_errors_from(exc)) from exc

    @staticmethod
    def _require_identity(ctx: AuthContext) -> Identity:
        if not ctx.is_authenticated or ctx.identity is None:
            raise NotAuthenticated()
        return ctx.identity

    # ── Register ────────────────────────────────────────────────────────

    async def register(self, payload: Payload, ctx: Optional[AuthContext] = None) -> ActionResult:
        """
        Create an identity.

        With ``login_after_registration`` the new identity is logged in on
        ``ctx`` using ``Settings.registration_login_field()`` as identifier.
        """
        ctx = ctx or AuthContext()
        if ctx.is_authenticated:
            return ActionResult(outcome=Outcome.SUCCESS, identity=ctx.identity, session=ctx.session)
        if not self.settings.enable_registration:
            raise RegistrationDisabled()

        req: RegisterRequest = self._bind(payload, RegisterRequest)
        if self.settings.enable_username and not req.username:
            raise ValidationError(field_errors=[FieldError(field="username", message="Username is required")])

        record = await asyncio.to_thread(self.hasher.hash, req.password)
        identity = await self.store.create(
            email=req.email,
            record=record,
            username=req.username if self.settings.enable_username else None,
            display_name=req.display_name,
        )
        send_notification(self.notifier, "register", "Your account has been created.")

        if not self.settings.login_after_registration:
            return ActionResult(outcome=Outcome.SUCCESS, identity=identity, message="Registration complete.")

        field = self.settings.registration_login_field()
        identifier = identity.email if field == "email" else identity.username
        return await self.engine.login(ctx, Credential(identifier=identifier or "", secret=req.password))

    # ── Change password ─────────────────────────────────────────────────

    async def change_password(self, ctx: AuthContext, payload: Payload) -> ActionResult:
        identity = self._require_identity(ctx)
        req: ChangePasswordRequest = self._bind(payload, ChangePasswordRequest)

        # re-read so a stale context never verifies against an old hash
        current = await self.store.get(identity.id)
        if not await self.engine.check_secret(current, req.credential):
            logger.info("Change password rejected for identity %s: wrong current password", identity.id)
            raise InvalidOldSecret()

        record = await asyncio.to_thread(self.hasher.hash, req.new_credential)
        await self.store.update_password_hash(identity.id, record)
        keep = ctx.session.token if ctx.session else None
        revoked = await self.sessions.revoke_all(identity.id, except_token=keep)
        logger.info("Password changed for identity %s; %d other session(s) revoked", identity.id, revoked)

        ctx.identity = current.model_copy(update={"password_hash": record.encoded})
        send_notification(self.notifier, "change-password", True)
        return ActionResult(
            outcome=Outcome.SUCCESS,
            identity=ctx.identity,
            session=ctx.session,
            message="Your password has been changed.",
        )

    # ── Change email ────────────────────────────────────────────────────

    async def change_email(self, ctx: AuthContext, payload: Payload) -> ActionResult:
        identity = self._require_identity(ctx)
        req: ChangeEmailRequest = self._bind(payload, ChangeEmailRequest)

        current = await self.store.get(identity.id)
        if not await self.engine.check_secret(current, req.credential):
            logger.info("Change email rejected for identity %s: wrong password", identity.id)
            raise InvalidSecret()

        if req.new_identity.strip() != current.email:
            await self.store.update_email(identity.id, req.new_identity)
            logger.info("Email changed for identity %s", identity.id)

        ctx.identity = current.model_copy(update={"email": req.new_identity.strip()})
        send_notification(self.notifier, "change-email", True)
        return ActionResult(
            outcome=Outcome.SUCCESS,
            identity=ctx.identity,
            session=ctx.session,
            message="Your email address has been changed.",
        )
