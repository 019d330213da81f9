"""
Property-scoped authorization.

Membership in ``user_properties`` decides access. Extra per-operation
policies (e.g. ability checks) can be layered on top and only run once
membership is established.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Protocol, Sequence

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Forbidden, ValidationError
from app.models.property import UserProperty

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, as proven by a verified access token."""

    user_id: uuid.UUID
    email: str
    abilities: frozenset[str] = frozenset()

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "Identity":
        return cls(
            user_id=uuid.UUID(str(claims["sub"])),
            email=claims.get("email") or "",
            abilities=frozenset(claims.get("abilities") or ()),
        )


def parse_property_id(raw: Any) -> uuid.UUID:
    value = str(raw).strip()
    if not _UUID_RE.match(value):
        raise ValidationError("BAD_PROPERTY_ID", "Property id is not a valid UUID")
    return uuid.UUID(value)


async def has_access(db: AsyncSession, user_id: uuid.UUID, property_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(UserProperty.id)
        .where(UserProperty.user_id == user_id, UserProperty.property_id == property_id)
        .limit(1)
    )
    return result.first() is not None


async def grant_membership(db: AsyncSession, user_id: uuid.UUID, property_id: uuid.UUID) -> None:
    """Add (user, property) to ``user_properties``; no-op if already present.

    Does not commit: callers fold it into their own transaction.
    """
    if await has_access(db, user_id, property_id):
        return
    db.add(UserProperty(user_id=user_id, property_id=property_id))
    await db.flush()


# ── Property id extraction ──────────────────────────────────────────
Extractor = Callable[[Request], Awaitable[Any]]


@dataclass(frozen=True)
class PropertyIdSource:
    name: str
    extract: Extractor


def from_path(param: str) -> PropertyIdSource:
    async def _extract(request: Request) -> Any:
        return request.path_params.get(param)

    return PropertyIdSource("path", _extract)


def from_query(param: str) -> PropertyIdSource:
    async def _extract(request: Request) -> Any:
        return request.query_params.get(param)

    return PropertyIdSource("query", _extract)


def from_body(key: str) -> PropertyIdSource:
    async def _extract(request: Request) -> Any:
        if request.method in ("GET", "HEAD", "DELETE"):
            return None
        if "json" not in request.headers.get("content-type", ""):
            return None
        try:
            body = await request.json()
        except ValueError:
            return None
        return body.get(key) if isinstance(body, dict) else None

    return PropertyIdSource("body", _extract)


def default_sources(param: str = "propertyId", body_key: str = "property_id") -> list[PropertyIdSource]:
    """Path, then query string, then JSON body."""
    return [from_path(param), from_query(param), from_body(body_key)]


# ── Policies ────────────────────────────────────────────────────────
class AccessPolicy(Protocol):
    async def check(self, identity: Identity, property_id: uuid.UUID) -> bool: ...


class RequireAbility:
    """Caller must hold every listed ability key."""

    def __init__(self, *abilities: str) -> None:
        self.abilities = frozenset(abilities)

    async def check(self, identity: Identity, property_id: uuid.UUID) -> bool:
        return self.abilities <= identity.abilities


@dataclass
class AuthorizationGate:
    sources: Sequence[PropertyIdSource] = field(default_factory=default_sources)
    policies: Iterable[AccessPolicy] = ()

    async def extract(self, request: Request) -> Any:
        for source in self.sources:
            value = await source.extract(request)
            if value not in (None, ""):
                return value
        return None

    async def authorize(self, db: AsyncSession, identity: Identity, raw_property_id: Any) -> uuid.UUID:
        if raw_property_id in (None, ""):
            raise ValidationError("PROPERTY_ID_REQUIRED", "Property id is required")
        # Format check first: malformed ids never reach the database
        property_id = parse_property_id(raw_property_id)

        if not await has_access(db, identity.user_id, property_id):
            logger.info("User %s denied access to property %s", identity.user_id, property_id)
            raise Forbidden()

        for policy in self.policies:
            if not await policy.check(identity, property_id):
                logger.info(
                    "User %s failed %s on property %s",
                    identity.user_id,
                    type(policy).__name__,
                    property_id,
                )
                raise Forbidden()
        return property_id

    async def __call__(self, request: Request, db: AsyncSession, identity: Identity) -> uuid.UUID:
        return await self.authorize(db, identity, await self.extract(request))
