"""
User authenticator — application entry point.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from api.middleware import register_middleware
from auth.container import AuthServices, build_auth_services
from auth.routes import register_exception_handlers, router as auth_router
from config.settings import Settings, config
from database.session import build_engine, build_session_factory, create_schema

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("aiosqlite", "asyncio", "sqlalchemy.engine"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[AsyncEngine] = None,
    services: Optional[AuthServices] = None,
) -> FastAPI:
    settings = settings or config
    engine = engine or build_engine(settings.database_url, echo=settings.debug)
    services = services or build_auth_services(settings, build_session_factory(engine))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Ensuring identity / session schema…")
        await create_schema(engine)
        logger.info("Application ready to accept requests.")
        yield
        await engine.dispose()

    app = FastAPI(
        title="User Authenticator",
        version="1.0.0",
        description="Login, registration and credential changes.",
        lifespan=lifespan,
    )
    app.state.auth = services

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(auth_router, prefix="/user")

    return app


if __name__ == "__main__":
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
