"""
Property management core — application entry point.

This is the **only** file that assembles the app. Shared collaborators
(engine, session factory, token issuer, session service, rate limiter) are
built here from one ``Settings`` instance and hung on ``app.state``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.api.api import build_api_router
from app.core.config import Settings, settings as default_settings
from app.core.exceptions import register_exception_handlers
from app.core.security import PasswordHasher, TokenIssuer
from app.db.base import Base
from app.db.session import build_engine, build_session_factory

# Ensure all models are imported so metadata.create_all can see them
from app.models.property import Property, UserProperty  # noqa: F401
from app.models.refresh_token import RefreshToken  # noqa: F401
from app.models.room_class import RoomClass  # noqa: F401
from app.models.user import User, UserAbility  # noqa: F401
from app.services.refresh_tokens import RefreshTokenLedger
from app.services.session import SessionService

logging.basicConfig(
    level=getattr(logging, default_settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = app.state.engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    logger.info("%s v%s started", app.state.settings.PROJECT_NAME, app.state.settings.VERSION)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app(settings: Settings | None = None) -> FastAPI:
    cfg = settings or default_settings

    application = FastAPI(
        title=cfg.PROJECT_NAME,
        description="Sessions and property-scoped access for a multi-tenant PMS",
        version=cfg.VERSION,
        openapi_url=f"{cfg.API_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Injected collaborators
    engine = build_engine(cfg)
    issuer = TokenIssuer(cfg.SECRET_KEY, cfg.ALGORITHM)
    ledger = RefreshTokenLedger(issuer, ttl=timedelta(days=cfg.REFRESH_TOKEN_EXPIRE_DAYS))
    application.state.settings = cfg
    application.state.engine = engine
    application.state.session_factory = build_session_factory(engine)
    application.state.token_issuer = issuer
    application.state.session_service = SessionService(
        issuer=issuer,
        hasher=PasswordHasher(rounds=cfg.BCRYPT_ROUNDS),
        ledger=ledger,
        access_ttl=timedelta(minutes=cfg.ACCESS_TOKEN_EXPIRE_MINUTES),
    )

    # Rate limiting (login / refresh), keyed by client IP
    limiter = Limiter(key_func=get_remote_address, enabled=cfg.RATE_LIMIT_ENABLED)
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]

    # CORS — credentials allowed so the refresh cookie round-trips
    application.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    @application.get("/health", tags=["health"])
    async def health() -> dict[str, bool]:
        return {"ok": True}

    application.include_router(build_api_router(limiter, cfg), prefix=cfg.API_PREFIX)

    return application


app = create_app()
