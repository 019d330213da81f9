"""
Room class endpoints — the representative property-scoped resource.

Nested routes take the property id from the path; the flat
``/room-classes`` routes take it from the query string (GET) or the
JSON body (POST). Creating requires the ``room_type.create`` ability on
top of membership.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, require_property_access
from app.core.exceptions import ValidationError
from app.models.room_class import RoomClass
from app.schemas.property import RoomClassCreate, RoomClassRead

router = APIRouter(tags=["room-classes"])

CREATE_ABILITY = "room_type.create"


async def _list_room_classes(db: AsyncSession, property_id: uuid.UUID) -> list[RoomClass]:
    result = await db.execute(
        select(RoomClass)
        .where(RoomClass.property_id == property_id)
        .order_by(RoomClass.name, RoomClass.created_at)
    )
    return list(result.scalars().all())


async def _create_room_class(
    db: AsyncSession, property_id: uuid.UUID, body: RoomClassCreate | None
) -> RoomClass:
    if body is None or not body.name:
        raise ValidationError("NAME_REQUIRED", "Room class name is required")
    room_class = RoomClass(property_id=property_id, name=body.name, code=body.code)
    db.add(room_class)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(room_class)
    return room_class


# ── Nested under /properties/{propertyId} ──────────────────────────
@router.get("/properties/{propertyId}/room-classes", response_model=list[RoomClassRead])
async def list_property_room_classes(
    property_id: uuid.UUID = Depends(require_property_access()),
    db: AsyncSession = Depends(get_db),
) -> list[RoomClass]:
    return await _list_room_classes(db, property_id)


@router.post(
    "/properties/{propertyId}/room-classes",
    response_model=RoomClassRead,
    status_code=201,
)
async def create_property_room_class(
    body: RoomClassCreate | None = None,
    property_id: uuid.UUID = Depends(require_property_access(CREATE_ABILITY)),
    db: AsyncSession = Depends(get_db),
) -> RoomClass:
    return await _create_room_class(db, property_id, body)


# ── Flat routes: ?propertyId=… or {"property_id": …} ───────────────
@router.get("/room-classes", response_model=list[RoomClassRead])
async def list_room_classes(
    property_id: uuid.UUID = Depends(require_property_access()),
    db: AsyncSession = Depends(get_db),
) -> list[RoomClass]:
    return await _list_room_classes(db, property_id)


@router.post("/room-classes", response_model=RoomClassRead, status_code=201)
async def create_room_class(
    body: RoomClassCreate | None = None,
    property_id: uuid.UUID = Depends(require_property_access(CREATE_ABILITY)),
    db: AsyncSession = Depends(get_db),
) -> RoomClass:
    return await _create_room_class(db, property_id, body)
