"""
FastAPI dependencies — database session, auth guards, property gate.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Unauthenticated
from app.core.security import InvalidToken, TokenIssuer
from app.services.access import (AuthorizationGate, Identity, RequireAbility,
                                 default_sources)
from app.services.session import SessionService

# auto_error=False so a missing or non-Bearer header maps onto our own 401 envelope
bearer_scheme = HTTPBearer(auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Application components ──────────────────────────────────────────
def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Identity:
    """Verify the bearer access token. Signature + expiry only, no store lookup."""
    if credentials is None or not credentials.credentials:
        raise Unauthenticated(message="Access token missing")
    try:
        claims = issuer.verify_access_token(credentials.credentials)
        return Identity.from_claims(claims)
    except (InvalidToken, ValueError):
        raise Unauthenticated(message="Invalid or expired access token")


def require_property_access(*abilities: str, param: str = "propertyId"):
    """Guard for property-scoped routes; resolves to the validated property id.

    Optional ``abilities`` layer a ``RequireAbility`` policy on top of the
    membership check.
    """
    gate = AuthorizationGate(
        sources=default_sources(param),
        policies=[RequireAbility(*abilities)] if abilities else [],
    )

    async def _guard(
        request: Request,
        identity: Identity = Depends(get_current_identity),
        db: AsyncSession = Depends(get_db),
    ) -> uuid.UUID:
        property_id = await gate(request, db, identity)
        request.state.property_id = property_id
        return property_id

    return _guard
