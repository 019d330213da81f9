"""
Auth endpoints — register, login, refresh rotation, logout, profile.

The refresh token lives in an HttpOnly cookie scoped to this router's
mount point; the access token travels in the response body. Login and
refresh are rate limited per client IP by the app-owned ``Limiter``.
"""

from fastapi import APIRouter, Depends, Request, Response, status
from slowapi import Limiter
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_identity, get_db, get_session_service
from app.core.config import Settings
from app.core.exceptions import error_response
from app.schemas.auth import (LoginRequest, LoginResponse, LogoutResponse,
                              ProfileResponse, RegisterRequest,
                              RegisterResponse, TokenResponse)
from app.schemas.user import UserRead
from app.services.access import Identity
from app.services.session import (RefreshCookie, RefreshRejected,
                                  SessionService)


def apply_refresh_cookie(response: Response, cookie: RefreshCookie, cfg: Settings) -> None:
    if cookie.clears:
        response.delete_cookie(
            key=cfg.REFRESH_COOKIE_NAME,
            path=cfg.REFRESH_COOKIE_PATH,
            httponly=True,
            secure=cfg.COOKIE_SECURE,
            samesite="lax",
        )
        return
    response.set_cookie(
        key=cfg.REFRESH_COOKIE_NAME,
        value=cookie.value,
        expires=cookie.expires_at,
        path=cfg.REFRESH_COOKIE_PATH,
        httponly=True,
        secure=cfg.COOKIE_SECURE,
        samesite="lax",
    )


def _refresh_cookie_value(request: Request) -> str | None:
    return request.cookies.get(request.app.state.settings.REFRESH_COOKIE_NAME)


async def register(
    body: RegisterRequest | None = None,
    db: AsyncSession = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
) -> RegisterResponse:
    """Create an account. Returns an access token but no refresh cookie."""
    body = body or RegisterRequest()
    result = await sessions.register(db, body.name, body.email, body.password)
    return RegisterResponse(user=UserRead.model_validate(result.user), token=result.token)


async def login(
    request: Request,
    response: Response,
    body: LoginRequest | None = None,
    db: AsyncSession = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
) -> LoginResponse:
    """Authenticate with email/password. Sets the HttpOnly refresh cookie."""
    body = body or LoginRequest()
    result = await sessions.login(db, body.email, body.password)
    apply_refresh_cookie(response, result.cookie, request.app.state.settings)
    return LoginResponse(
        token=result.token,
        user=UserRead.model_validate(result.snapshot.user),
        abilities=result.snapshot.abilities,
        properties=result.snapshot.properties,
    )


async def refresh(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
):
    """Exchange the refresh cookie for a new access token and rotate the cookie."""
    cfg = request.app.state.settings
    try:
        result = await sessions.refresh(db, _refresh_cookie_value(request))
    except RefreshRejected as exc:
        rejected = error_response(exc)
        if exc.cookie is not None:
            apply_refresh_cookie(rejected, exc.cookie, cfg)
        return rejected

    apply_refresh_cookie(response, result.cookie, cfg)
    return TokenResponse(token=result.token)


async def logout(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
) -> LogoutResponse:
    """Revoke the refresh token (if any) and clear the cookie. Never fails."""
    cookie = await sessions.logout(db, _refresh_cookie_value(request))
    apply_refresh_cookie(response, cookie, request.app.state.settings)
    return LogoutResponse(ok=True)


async def profile(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
) -> ProfileResponse:
    """Current user with live abilities and property memberships."""
    snapshot = await sessions.profile(db, identity.user_id)
    return ProfileResponse(
        user=UserRead.model_validate(snapshot.user),
        abilities=snapshot.abilities,
        properties=snapshot.properties,
    )


def build_router(limiter: Limiter, cfg: Settings) -> APIRouter:
    """Auth routes, with login/refresh limits taken from ``cfg``."""
    router = APIRouter(prefix="/auth", tags=["auth"])
    router.add_api_route(
        "/register",
        register,
        methods=["POST"],
        response_model=RegisterResponse,
        status_code=status.HTTP_201_CREATED,
    )
    router.add_api_route(
        "/login",
        limiter.limit(cfg.LOGIN_RATE_LIMIT)(login),
        methods=["POST"],
        response_model=LoginResponse,
    )
    router.add_api_route(
        "/refresh",
        limiter.limit(cfg.REFRESH_RATE_LIMIT)(refresh),
        methods=["POST"],
        response_model=TokenResponse,
    )
    router.add_api_route("/logout", logout, methods=["POST"], response_model=LogoutResponse)
    router.add_api_route("/profile", profile, methods=["GET"], response_model=ProfileResponse)
    return router
