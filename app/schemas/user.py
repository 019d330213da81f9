"""Pydantic schemas for users."""

from __future__ import annotations

import uuid

from pydantic import BaseModel


class UserRead(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    status: str | None = None

    model_config = {"from_attributes": True}


class PropertyMember(UserRead):
    abilities: list[str] = []
