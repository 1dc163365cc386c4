"""
FastAPI dependencies for authentication.

Provides ``get_services``, ``get_auth_context`` and ``require_auth_context``
which are used across the ``/user`` routes.  The services object is put on
``app.state.auth`` by ``main.create_app``.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth.container import AuthServices
from auth.engine import AuthContext
from auth.errors import NotAuthenticated, SessionInvalid

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> AuthServices:
    return request.app.state.auth


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    services: AuthServices = Depends(get_services),
) -> AuthContext:
    """
    Context for routes that also serve anonymous callers (login, logout,
    register).  A missing, revoked or expired token yields an anonymous
    context.
    """
    if credentials is None:
        return AuthContext()
    try:
        return await services.engine.authenticate(credentials.credentials)
    except SessionInvalid as exc:
        logger.debug("Ignoring stale bearer token: %s", exc.code)
        return AuthContext()


async def require_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    services: AuthServices = Depends(get_services),
) -> AuthContext:
    """Authenticated context or raise (invalid / expired tokens propagate)."""
    if credentials is None:
        raise NotAuthenticated()
    return await services.engine.authenticate(credentials.credentials)
