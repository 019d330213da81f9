"""
Property endpoints.

- Listing / creating properties needs only an authenticated user.
- Everything under /properties/{propertyId} goes through the property gate.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_identity, get_db, require_property_access
from app.core.exceptions import NotFound, ValidationError
from app.models.property import Property, UserProperty
from app.models.user import User, UserAbility
from app.schemas.property import PropertyCreate, PropertyRead
from app.schemas.user import PropertyMember
from app.services.access import Identity, grant_membership

router = APIRouter(prefix="/properties", tags=["properties"])
logger = logging.getLogger(__name__)


@router.get("", response_model=list[PropertyRead])
async def list_properties(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> list[Property]:
    """Properties the caller is a member of, newest first."""
    result = await db.execute(
        select(Property)
        .join(UserProperty, UserProperty.property_id == Property.id)
        .where(UserProperty.user_id == identity.user_id)
        .order_by(Property.created_at.desc())
    )
    return list(result.scalars().all())


@router.post("", response_model=PropertyRead, status_code=201)
async def create_property(
    body: PropertyCreate | None = None,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Property:
    """Create a property; the creator is granted membership in the same transaction."""
    body = body or PropertyCreate()
    if not body.name:
        raise ValidationError("NAME_REQUIRED", "Property name is required")

    prop = Property(**body.model_dump())
    try:
        db.add(prop)
        await db.flush()
        await grant_membership(db, identity.user_id, prop.id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(prop)
    logger.info("User %s created property %s", identity.user_id, prop.id)
    return prop


@router.get("/{propertyId}", response_model=PropertyRead)
async def get_property(
    property_id: uuid.UUID = Depends(require_property_access()),
    db: AsyncSession = Depends(get_db),
) -> Property:
    prop = await db.get(Property, property_id)
    if prop is None:
        raise NotFound()
    return prop


@router.get("/{propertyId}/users", response_model=list[PropertyMember])
async def list_property_users(
    property_id: uuid.UUID = Depends(require_property_access()),
    db: AsyncSession = Depends(get_db),
) -> list[PropertyMember]:
    """Members of the property with their ability keys."""
    result = await db.execute(
        select(User)
        .join(UserProperty, UserProperty.user_id == User.id)
        .where(UserProperty.property_id == property_id)
        .order_by(User.name, User.email)
    )
    users = list(result.scalars().all())
    if not users:
        return []

    ab = await db.execute(
        select(UserAbility.user_id, UserAbility.ability)
        .where(UserAbility.user_id.in_([u.id for u in users]))
        .order_by(UserAbility.ability)
    )
    abilities: dict[uuid.UUID, list[str]] = {}
    for user_id, ability in ab.all():
        abilities.setdefault(user_id, []).append(ability)

    return [
        PropertyMember(
            id=u.id,
            name=u.name,
            email=u.email,
            status=u.status,
            abilities=abilities.get(u.id, []),
        )
        for u in users
    ]
