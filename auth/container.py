"""
Explicit wiring of the auth services.

Everything is built eagerly from a ``Settings`` instance and a session
factory; nothing looks collaborators up lazily.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auth.accounts import AccountMutationService
from auth.collaborators import (
    LoggingNotifier,
    Notifier,
    PydanticValidator,
    RedirectPolicy,
    RouteRedirectPolicy,
    Validator,
)
from auth.engine import AuthenticationEngine
from auth.password import PasswordHasher
from auth.sessions import SessionManager
from auth.store import CredentialStore
from config.settings import Settings


@dataclass(frozen=True)
class AuthServices:
    settings: Settings
    store: CredentialStore
    hasher: PasswordHasher
    sessions: SessionManager
    engine: AuthenticationEngine
    accounts: AccountMutationService
    redirects: RedirectPolicy
    notifier: Notifier


def build_auth_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    validator: Optional[Validator] = None,
    notifier: Optional[Notifier] = None,
    redirects: Optional[RedirectPolicy] = None,
) -> AuthServices:
    store = CredentialStore(session_factory, settings)
    hasher = PasswordHasher(settings)
    sessions = SessionManager(session_factory, settings)
    engine = AuthenticationEngine(store, hasher, sessions)
    notifier = notifier or LoggingNotifier()
    accounts = AccountMutationService(
        settings=settings,
        store=store,
        hasher=hasher,
        sessions=sessions,
        engine=engine,
        validator=validator or PydanticValidator(),
        notifier=notifier,
    )
    return AuthServices(
        settings=settings,
        store=store,
        hasher=hasher,
        sessions=sessions,
        engine=engine,
        accounts=accounts,
        redirects=redirects or RouteRedirectPolicy(settings),
        notifier=notifier,
    )
