"""
Application settings loaded from environment variables.
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # ── Database ─────────────────────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./authenticator.db"
    store_timeout_seconds: float = 5.0   # upper bound for every store / session call

    # ── Server ───────────────────────────────────────────────────────────
    port: int = 8000
    host: str = "0.0.0.0"
    debug: bool = False
    cors_origins: list = ["*"]

    # ── Password hashing (bcrypt) ────────────────────────────────────────
    bcrypt_rounds: int = 12       # work factor for new hashes
    bcrypt_min_rounds: int = 12   # hashes below this are upgraded on login

    # ── Sessions ─────────────────────────────────────────────────────────
    session_ttl_seconds: int = 604800   # 7 days

    # ── Identity / registration policy ───────────────────────────────────
    auth_identity_fields: List[str] = ["email"]   # tried in order on login
    registration_login_field_order: List[str] = ["email", "username"]
    enable_registration: bool = True
    enable_username: bool = True
    login_after_registration: bool = True

    # ── Redirects ────────────────────────────────────────────────────────
    use_redirect_parameter_if_present: bool = True
    login_redirect_route: str = "/user"
    logout_redirect_route: str = "/user/login"

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }

    def registration_login_field(self) -> str:
        """
        Identity field used to log a user in right after registration.

        First entry of ``registration_login_field_order`` that is also an
        accepted login field.  Falls back to the first login field.
        """
        for field in self.registration_login_field_order:
            if field in self.auth_identity_fields:
                return field
        return self.auth_identity_fields[0]


config = Settings()
