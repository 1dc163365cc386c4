"""
Error taxonomy for the authentication core.

Every error carries a stable ``code`` and a ``user_message`` that is safe
to show to the client.  The HTTP layer maps ``code`` to a status code;
nothing in here knows about transports.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

GENERIC_LOGIN_FAILURE = "Authentication failed. Please try again."


class AuthError(Exception):
    code = "auth_error"
    default_message = "Authentication error."

    def __init__(self, user_message: Optional[str] = None, **context: Any):
        self.user_message = user_message or self.default_message
        self.context = context
        super().__init__(self.user_message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.user_message}


class NotFound(AuthError):
    code = "not_found"
    default_message = "No such identity."


class Conflict(AuthError):
    code = "conflict"
    default_message = "That username or email is already registered."


class ValidationError(AuthError):
    code = "validation_error"
    default_message = "Invalid request."

    def __init__(self, user_message: Optional[str] = None, field_errors: Optional[List[Any]] = None, **context: Any):
        super().__init__(user_message, **context)
        self.field_errors = list(field_errors or [])

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["field_errors"] = [
            fe.model_dump() if hasattr(fe, "model_dump") else fe for fe in self.field_errors
        ]
        return out


class InvalidSecret(AuthError):
    code = "invalid_secret"
    default_message = "The password you entered is incorrect."


class InvalidOldSecret(InvalidSecret):
    code = "invalid_old_secret"
    default_message = "Your current password is incorrect."


class CorruptCredential(AuthError):
    code = "corrupt_credential"
    default_message = "Stored credential is unreadable."


class StoreUnavailable(AuthError):
    code = "store_unavailable"
    default_message = "The account store is temporarily unavailable."


class SessionInvalid(AuthError):
    code = "session_invalid"
    default_message = "Session is invalid. Please log in again."


class SessionExpired(SessionInvalid):
    code = "session_expired"
    default_message = "Session has expired. Please log in again."


class AuthenticationFailed(AuthError):
    """Raised for both unknown identifiers and wrong secrets."""

    code = "authentication_failed"
    default_message = GENERIC_LOGIN_FAILURE


class NotAuthenticated(AuthError):
    code = "not_authenticated"
    default_message = "You must be logged in."


class RegistrationDisabled(AuthError):
    code = "registration_disabled"
    default_message = "Registration is disabled."


class InvalidTransition(AuthError):
    code = "invalid_transition"
    default_message = "Action not allowed in the current authentication state."
