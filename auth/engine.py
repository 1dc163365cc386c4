"""
AuthenticationEngine — the single funnel for credential checks.

Per-request state lives in an ``AuthContext``; the engine is stateless and
shared across requests.  Allowed transitions::

    anonymous       --login-->    authenticating
    authenticating  --success-->  authenticated   (session issued)
    authenticating  --failure-->  failed
    authenticating  --abort-->    anonymous       (store error mid-attempt)
    failed          --retry-->    anonymous
    authenticated   --logout-->   anonymous       (session revoked)

Unknown identifiers and wrong secrets fail identically, down to the
bcrypt work done, so callers cannot probe which accounts exist.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from auth.errors import AuthError, AuthenticationFailed, InvalidTransition, NotFound
from auth.models import ActionResult, Credential, Identity, Outcome, Session
from auth.password import PasswordHasher
from auth.sessions import SessionManager
from auth.store import CredentialStore

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


_TRANSITIONS = {
    (AuthState.ANONYMOUS, "login"): AuthState.AUTHENTICATING,
    (AuthState.AUTHENTICATING, "success"): AuthState.AUTHENTICATED,
    (AuthState.AUTHENTICATING, "failure"): AuthState.FAILED,
    (AuthState.AUTHENTICATING, "abort"): AuthState.ANONYMOUS,
    (AuthState.FAILED, "retry"): AuthState.ANONYMOUS,
    (AuthState.AUTHENTICATED, "logout"): AuthState.ANONYMOUS,
}


@dataclass
class AuthContext:
    state: AuthState = AuthState.ANONYMOUS
    identity: Optional[Identity] = None
    session: Optional[Session] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state is AuthState.AUTHENTICATED

    def advance(self, event: str) -> AuthState:
        try:
            self.state = _TRANSITIONS[(self.state, event)]
        except KeyError:
            raise InvalidTransition(state=self.state.value, event=event) from None
        return self.state


class AuthenticationEngine:
    def __init__(self, store: CredentialStore, hasher: PasswordHasher, sessions: SessionManager):
        self.store = store
        self.hasher = hasher
        self.sessions = sessions

    # ── Credential checks ───────────────────────────────────────────────

    async def check_secret(self, identity: Identity, secret: str) -> bool:
        """Verify ``secret`` against the identity's stored hash off the event loop."""
        return await asyncio.to_thread(self.hasher.verify, secret, identity.password_hash)

    async def _verify_credential(self, credential: Credential) -> Identity:
        try:
            identity = await self.store.find_by_identifier(credential.identifier)
        except NotFound:
            await asyncio.to_thread(self.hasher.verify_dummy, credential.secret)
            raise AuthenticationFailed() from None

        if not await self.check_secret(identity, credential.secret):
            raise AuthenticationFailed()

        if self.hasher.needs_rehash(identity.password_hash):
            identity = await self._upgrade_hash(identity, credential.secret)
        return identity

    async def _upgrade_hash(self, identity: Identity, secret: str) -> Identity:
        try:
            record = await asyncio.to_thread(self.hasher.hash, secret)
            await self.store.update_password_hash(identity.id, record)
        except AuthError as exc:
            logger.warning("Password hash upgrade failed for identity %s: %s", identity.id, exc.code)
            return identity
        logger.info("Upgraded password hash for identity %s to cost %d", identity.id, record.cost)
        return identity.model_copy(update={"password_hash": record.encoded})

    # ── Transitions ─────────────────────────────────────────────────────

    async def login(self, ctx: AuthContext, credential: Credential) -> ActionResult:
        if ctx.is_authenticated:
            return ActionResult(outcome=Outcome.SUCCESS, identity=ctx.identity, session=ctx.session)
        if ctx.state is AuthState.FAILED:
            self.retry(ctx)

        if not credential.identifier.strip() or not credential.secret:
            return ActionResult(outcome=Outcome.NEEDS_INPUT, message=AuthenticationFailed.default_message)

        ctx.advance("login")
        try:
            identity = await self._verify_credential(credential)
            session = await self.sessions.issue(identity.id)
        except AuthenticationFailed as exc:
            ctx.advance("failure")
            logger.info("Login failed")
            return ActionResult(outcome=Outcome.FAILURE, message=exc.user_message)
        except Exception:
            ctx.advance("abort")
            raise

        ctx.identity, ctx.session = identity, session
        ctx.advance("success")
        logger.info("Login: identity %s", identity.id)
        return ActionResult(outcome=Outcome.SUCCESS, identity=identity, session=session)

    async def authenticate(self, token: str) -> AuthContext:
        """
        Rebuild an authenticated context from a bearer token.

        ``SessionInvalid`` / ``SessionExpired`` propagate to the caller.
        """
        identity, session = await self.sessions.resolve(token)
        return AuthContext(state=AuthState.AUTHENTICATED, identity=identity, session=session)

    async def logout(self, ctx: AuthContext) -> ActionResult:
        if not ctx.is_authenticated:
            return ActionResult(outcome=Outcome.SUCCESS)
        await self.sessions.revoke(ctx.session.token)
        logger.info("Logout: identity %s", ctx.identity.id)
        ctx.advance("logout")
        ctx.identity = ctx.session = None
        return ActionResult(outcome=Outcome.SUCCESS, message="You have been logged out.")

    def retry(self, ctx: AuthContext) -> AuthContext:
        ctx.advance("retry")
        return ctx
