"""
Auth API routes — login, authenticate, logout, register,
change-password, change-email.

Route prefix: /user

Each handler hands the request to the auth core and turns the returned
``ActionResult`` into an ``ActionResponse`` whose ``redirect`` comes from
the configured ``RedirectPolicy``.  Core errors are mapped to status codes
by ``register_exception_handlers``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from auth.container import AuthServices
from auth.dependencies import get_auth_context, get_services, require_auth_context
from auth.engine import AuthContext
from auth.errors import (
    GENERIC_LOGIN_FAILURE,
    AuthError,
    AuthenticationFailed,
    Conflict,
    CorruptCredential,
    InvalidSecret,
    InvalidTransition,
    NotAuthenticated,
    NotFound,
    RegistrationDisabled,
    SessionInvalid,
    StoreUnavailable,
    ValidationError,
)
from auth.models import ActionResponse, ActionResult, IdentityView, LoginRequest, Outcome

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

_OUTCOME_STATUS = {
    Outcome.SUCCESS: status.HTTP_200_OK,
    Outcome.FAILURE: status.HTTP_401_UNAUTHORIZED,
    Outcome.NEEDS_INPUT: 422,
}

_ERROR_STATUS = {
    NotFound: status.HTTP_404_NOT_FOUND,
    Conflict: status.HTTP_409_CONFLICT,
    ValidationError: 422,
    InvalidSecret: status.HTTP_403_FORBIDDEN,
    CorruptCredential: status.HTTP_401_UNAUTHORIZED,
    SessionInvalid: status.HTTP_401_UNAUTHORIZED,
    AuthenticationFailed: status.HTTP_401_UNAUTHORIZED,
    NotAuthenticated: status.HTTP_401_UNAUTHORIZED,
    RegistrationDisabled: status.HTTP_403_FORBIDDEN,
    InvalidTransition: status.HTTP_409_CONFLICT,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# ── Response shaping ───────────────────────────────────────────────────


def _respond(
    services: AuthServices,
    action: str,
    result: ActionResult,
    redirect: Optional[str] = None,
) -> JSONResponse:
    body = ActionResponse(
        outcome=result.outcome,
        message=result.message,
        redirect=services.redirects.destination(action, result.outcome, redirect),
        token=result.session.token if result.session else None,
        identity=IdentityView.of(result.identity) if result.identity else None,
        field_errors=result.field_errors,
    )
    return JSONResponse(status_code=_OUTCOME_STATUS[result.outcome], content=body.model_dump(mode="json"))


def register_exception_handlers(app: FastAPI) -> None:
    """Map auth core errors onto HTTP responses."""

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        code = next(
            (_ERROR_STATUS[cls] for cls in type(exc).__mro__ if cls in _ERROR_STATUS),
            status.HTTP_400_BAD_REQUEST,
        )
        body = exc.to_dict()
        if isinstance(exc, CorruptCredential):
            logger.error("Unreadable stored credential on %s", request.url.path)
            body = {"code": AuthenticationFailed.code, "message": GENERIC_LOGIN_FAILURE}
        return JSONResponse(status_code=code, content=body)


# ── Endpoints ──────────────────────────────────────────────────────────


@router.get("", response_model=IdentityView)
async def index(ctx: AuthContext = Depends(require_auth_context)) -> IdentityView:
    """Current user."""
    return IdentityView.of(ctx.identity)


@router.post("/login", response_model=ActionResponse)
async def login(
    req: LoginRequest,
    ctx: AuthContext = Depends(get_auth_context),
    services: AuthServices = Depends(get_services),
) -> JSONResponse:
    """Login with identity + credential."""
    result = await services.engine.login(ctx, req.to_credential())
    return _respond(services, "login", result, req.redirect)


@router.post("/authenticate", response_model=ActionResponse)
async def authenticate(
    req: LoginRequest,
    ctx: AuthContext = Depends(get_auth_context),
    services: AuthServices = Depends(get_services),
) -> JSONResponse:
    """General-purpose authentication action; same contract as login."""
    result = await services.engine.login(ctx, req.to_credential())
    return _respond(services, "authenticate", result, req.redirect)


@router.post("/logout", response_model=ActionResponse)
async def logout(
    ctx: AuthContext = Depends(get_auth_context),
    services: AuthServices = Depends(get_services),
) -> JSONResponse:
    result = await services.engine.logout(ctx)
    return _respond(services, "logout", result)


@router.post("/register", response_model=ActionResponse)
async def register(
    payload: Dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(get_auth_context),
    services: AuthServices = Depends(get_services),
) -> JSONResponse:
    """Register a new user (and log them in when configured to)."""
    result = await services.accounts.register(payload, ctx)
    action = "login" if result.session else "register"
    redirect = payload.get("redirect")
    return _respond(services, action, result, redirect if isinstance(redirect, str) else None)


@router.post("/change-password", response_model=ActionResponse)
async def change_password(
    payload: Dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(require_auth_context),
    services: AuthServices = Depends(get_services),
) -> JSONResponse:
    result = await services.accounts.change_password(ctx, payload)
    return _respond(services, "change-password", result)


@router.post("/change-email", response_model=ActionResponse)
async def change_email(
    payload: Dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(require_auth_context),
    services: AuthServices = Depends(get_services),
) -> JSONResponse:
    result = await services.accounts.change_email(ctx, payload)
    return _respond(services, "change-email", result)
