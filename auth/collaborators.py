"""
Capabilities the auth core consumes but does not own.

  • ``Validator``      — payload shape checks (forms collaborator)
  • ``Notifier``       — fire-and-forget post-action messages (flash messages)
  • ``RedirectPolicy`` — where the transport sends the user after an action

Each comes with a default implementation; callers may inject their own.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Protocol, Type
from urllib.parse import quote

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from auth.models import FieldError, Outcome
from config.settings import Settings

logger = logging.getLogger(__name__)


class Validator(Protocol):
    def validate(self, payload: Any, schema: Type[BaseModel]) -> List[FieldError]:
        ...


class Notifier(Protocol):
    def notify(self, namespace: str, message: Any) -> None:
        ...


class RedirectPolicy(Protocol):
    def destination(self, action: str, outcome: Outcome, redirect: Optional[str] = None) -> Optional[str]:
        ...


# ── Validator ───────────────────────────────────────────────────────────


def field_errors_from(exc: PydanticValidationError) -> List[FieldError]:
    return [
        FieldError(
            field=".".join(str(part) for part in err["loc"]) or "__all__",
            message=err["msg"],
        )
        for err in exc.errors()
    ]


class PydanticValidator:
    """Validate a payload (dict or model) against a pydantic schema."""

    def validate(self, payload: Any, schema: Type[BaseModel]) -> List[FieldError]:
        data = payload.model_dump() if isinstance(payload, BaseModel) else payload
        try:
            schema.model_validate(data)
        except PydanticValidationError as exc:
            return field_errors_from(exc)
        return []


# ── Notifiers ───────────────────────────────────────────────────────────


class LoggingNotifier:
    def notify(self, namespace: str, message: Any) -> None:
        logger.info("[%s] %s", namespace, message)


class FlashNotifier:
    """
    Keeps messages per namespace until they are read once, the way a
    flash messenger does.  ``pop`` drains a namespace.
    """

    def __init__(self):
        self._messages: Dict[str, List[Any]] = defaultdict(list)

    def notify(self, namespace: str, message: Any) -> None:
        self._messages[namespace].append(message)

    def pop(self, namespace: str) -> List[Any]:
        return self._messages.pop(namespace, [])


def send_notification(notifier: Optional[Notifier], namespace: str, message: Any) -> None:
    """Deliver a notification without ever letting the notifier fail the caller."""
    if notifier is None:
        return
    try:
        notifier.notify(namespace, message)
    except Exception:
        logger.exception("Notifier failed for namespace %s", namespace)


# ── Redirects ───────────────────────────────────────────────────────────


class RouteRedirectPolicy:
    """
    Post-action destinations for the ``/user`` routes.

    A caller-supplied ``redirect`` is only honoured when
    ``use_redirect_parameter_if_present`` is on and it is a local path.
    """

    LOGIN = "/user/login"
    CHANGE_PASSWORD = "/user/change-password"
    CHANGE_EMAIL = "/user/change-email"

    def __init__(self, settings: Settings):
        self.settings = settings

    def _requested(self, redirect: Optional[str]) -> Optional[str]:
        if not redirect or not self.settings.use_redirect_parameter_if_present:
            return None
        if not redirect.startswith("/") or redirect.startswith("//"):
            logger.warning("Ignoring non-local redirect target")
            return None
        return redirect

    def destination(self, action: str, outcome: Outcome, redirect: Optional[str] = None) -> Optional[str]:
        requested = self._requested(redirect)

        if action in ("login", "authenticate"):
            if outcome is Outcome.SUCCESS:
                return requested or self.settings.login_redirect_route
            return self._with_redirect(self.LOGIN, requested)

        if action == "logout":
            return requested or self.settings.logout_redirect_route

        if action == "register":
            if outcome is Outcome.SUCCESS:
                return self._with_redirect(self.LOGIN, requested)
            return None

        if action == "change-password":
            return self.CHANGE_PASSWORD if outcome is Outcome.SUCCESS else None

        if action == "change-email":
            return self.CHANGE_EMAIL if outcome is Outcome.SUCCESS else None

        return None

    @staticmethod
    def _with_redirect(route: str, redirect: Optional[str]) -> str:
        if not redirect:
            return route
        return f"{route}?redirect={quote(redirect, safe='')}"
