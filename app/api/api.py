"""
API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter
from slowapi import Limiter

from app.api.endpoints import auth, properties, room_classes
from app.core.config import Settings


def build_api_router(limiter: Limiter, cfg: Settings) -> APIRouter:
    api_router = APIRouter()

    # Auth (register, login, refresh, logout, profile)
    api_router.include_router(auth.build_router(limiter, cfg))

    # Properties + membership
    api_router.include_router(properties.router)

    # Property-scoped resources
    api_router.include_router(room_classes.router)

    return api_router
