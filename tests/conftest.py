"""
Shared fixtures: a throwaway SQLite database per test and auth services
wired against it with a cheap bcrypt work factor.
"""

import pytest
import pytest_asyncio

from auth.collaborators import FlashNotifier
from auth.container import build_auth_services
from auth.engine import AuthContext
from config.settings import Settings
from database.session import build_engine, build_session_factory, create_schema

ALICE = {
    "username": "alice",
    "email": "alice@x.com",
    "password": "P@ss1",
    "password_verify": "P@ss1",
}


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}",
        "bcrypt_rounds": 4,
        "bcrypt_min_rounds": 4,
        "auth_identity_fields": ["email", "username"],
        "login_after_registration": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def engine(settings):
    engine = build_engine(settings.database_url)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def notifier() -> FlashNotifier:
    return FlashNotifier()


@pytest.fixture
def services(settings, session_factory, notifier):
    return build_auth_services(settings, session_factory, notifier=notifier)


@pytest_asyncio.fixture
async def alice(services):
    """Registered identity for ``ALICE``."""
    result = await services.accounts.register(dict(ALICE), AuthContext())
    return result.identity
