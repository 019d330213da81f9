"""Pydantic schemas for properties and property-scoped resources."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, field_validator


def _strip(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    return v or None


# ── Property ────────────────────────────────────────────────────────
class PropertyCreate(BaseModel):
    name: str | None = None
    description: str | None = None
    address: str | None = None
    city: str | None = None
    country: str | None = None
    phone: str | None = None
    email: str | None = None

    @field_validator("name", "email", "phone")
    @classmethod
    def _clean(cls, v: str | None) -> str | None:
        return _strip(v)


class PropertyRead(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None = None
    address: str | None = None
    city: str | None = None
    country: str | None = None
    phone: str | None = None
    email: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Room class ──────────────────────────────────────────────────────
class RoomClassCreate(BaseModel):
    name: str | None = None
    code: str | None = None
    # Only read on the flat /room-classes route; nested routes take it from the path
    property_id: str | None = None

    @field_validator("name", "code")
    @classmethod
    def _clean(cls, v: str | None) -> str | None:
        return _strip(v)


class RoomClassRead(BaseModel):
    id: uuid.UUID
    property_id: uuid.UUID
    name: str
    code: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
