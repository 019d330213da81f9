"""Pydantic schemas for the auth / session endpoints."""

from __future__ import annotations

import uuid

from pydantic import BaseModel

from app.schemas.user import UserRead


class RegisterRequest(BaseModel):
    # Presence is checked by the session service so the error code stays stable
    name: str | None = None
    email: str | None = None
    password: str | None = None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class PropertyRef(BaseModel):
    property_id: uuid.UUID
    property_name: str


class RegisterResponse(BaseModel):
    user: UserRead
    token: str


class LoginResponse(BaseModel):
    token: str
    user: UserRead
    abilities: list[str]
    properties: list[PropertyRef]


class ProfileResponse(BaseModel):
    user: UserRead
    abilities: list[str]
    properties: list[PropertyRef]


class TokenResponse(BaseModel):
    token: str


class LogoutResponse(BaseModel):
    ok: bool = True
