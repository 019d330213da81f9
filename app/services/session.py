"""
Login / refresh / logout / registration flow.

The service never touches framework response objects: the refresh cookie
comes back as a ``RefreshCookie`` descriptor that the HTTP layer applies.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (EmailAlreadyExists, InvalidCredentials,
                                 NotFound, Unauthenticated, ValidationError)
from app.core.security import PasswordHasher, TokenIssuer
from app.models.property import Property, UserProperty
from app.models.user import User, UserAbility
from app.services.refresh_tokens import RefreshTokenLedger, RefreshTokenNotFound

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def normalize_email(email: Any) -> str:
    return str(email).strip().lower()


@dataclass(frozen=True)
class RefreshCookie:
    """What the client's refresh cookie should become. Empty value clears it."""

    value: str
    expires_at: datetime

    @property
    def clears(self) -> bool:
        return not self.value


CLEAR_REFRESH_COOKIE = RefreshCookie(value="", expires_at=_EPOCH)


class RefreshRejected(Unauthenticated):
    """Refresh failed; carries the cookie the client must end up with."""

    def __init__(self, code: str, message: str, cookie: RefreshCookie | None = None) -> None:
        super().__init__(code, message)
        self.cookie = cookie


@dataclass
class UserSnapshot:
    """Current identity state, re-read from the store on every token issue."""

    user: User
    abilities: list[str] = field(default_factory=list)
    properties: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class Registration:
    user: User
    token: str


@dataclass
class LoginResult:
    token: str
    snapshot: UserSnapshot
    cookie: RefreshCookie


@dataclass
class RefreshResult:
    token: str
    cookie: RefreshCookie


class SessionService:
    def __init__(
        self,
        issuer: TokenIssuer,
        hasher: PasswordHasher,
        ledger: RefreshTokenLedger,
        access_ttl: timedelta,
    ) -> None:
        self._issuer = issuer
        self._hasher = hasher
        self._ledger = ledger
        self._access_ttl = access_ttl
        # Compared against when the email is unknown so both failures cost the same
        self._dummy_hash = hasher.hash(secrets.token_hex(16))

    # ── helpers ─────────────────────────────────────────────────────
    async def _snapshot(self, db: AsyncSession, user: User) -> UserSnapshot:
        ab = await db.execute(
            select(UserAbility.ability)
            .where(UserAbility.user_id == user.id)
            .order_by(UserAbility.ability)
        )
        props = await db.execute(
            select(Property.id, Property.name)
            .join(UserProperty, UserProperty.property_id == Property.id)
            .where(UserProperty.user_id == user.id)
            .order_by(Property.name)
        )
        return UserSnapshot(
            user=user,
            abilities=list(ab.scalars().all()),
            properties=[
                {"property_id": pid, "property_name": name} for pid, name in props.all()
            ],
        )

    def _access_token(self, snapshot: UserSnapshot) -> str:
        return self._issuer.issue_access_token(
            {
                "sub": str(snapshot.user.id),
                "email": snapshot.user.email,
                "abilities": snapshot.abilities,
                "properties": [str(p["property_id"]) for p in snapshot.properties],
            },
            self._access_ttl,
        )

    # ── flows ───────────────────────────────────────────────────────
    async def register(
        self, db: AsyncSession, name: str | None, email: str | None, password: str | None
    ) -> Registration:
        email = normalize_email(email) if email else ""
        if not name or not email or not password:
            raise ValidationError("NAME_EMAIL_PASSWORD_REQUIRED", "Name, email and password are required")

        existing = await db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise EmailAlreadyExists()

        user = User(
            name=name,
            email=email,
            password_hash=await run_in_threadpool(self._hasher.hash, password),
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # Concurrent registration with the same email won the insert
            await db.rollback()
            raise EmailAlreadyExists()
        await db.refresh(user)
        logger.info("Registered user %s", user.id)

        # Registration is not a login: no refresh session is opened
        token = self._access_token(UserSnapshot(user=user))
        return Registration(user=user, token=token)

    async def login(self, db: AsyncSession, email: str | None, password: str | None) -> LoginResult:
        email = normalize_email(email) if email else ""
        if not email or not password:
            raise ValidationError("EMAIL_PASSWORD_REQUIRED", "Email and password are required")

        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        stored_hash = user.password_hash if user is not None else self._dummy_hash
        valid = await run_in_threadpool(self._hasher.verify, password, stored_hash)
        if user is None or not valid or not user.is_active:
            raise InvalidCredentials()

        snapshot = await self._snapshot(db, user)
        token = self._access_token(snapshot)
        issued = await self._ledger.issue(db, user.id)
        logger.info("User %s logged in", user.id)
        return LoginResult(
            token=token,
            snapshot=snapshot,
            cookie=RefreshCookie(value=issued.raw, expires_at=issued.expires_at),
        )

    async def refresh(self, db: AsyncSession, raw: str | None) -> RefreshResult:
        if not raw:
            raise RefreshRejected("NO_REFRESH", "Refresh token missing")

        try:
            rotated = await self._ledger.consume_and_rotate(db, raw)
        except RefreshTokenNotFound:
            logger.info("Rejected unknown, revoked or expired refresh token")
            raise RefreshRejected(
                "BAD_REFRESH", "Invalid or expired refresh token", CLEAR_REFRESH_COOKIE
            )

        user = await db.get(User, rotated.user_id)
        if user is None or not user.is_active:
            await self._ledger.revoke(db, rotated.raw)
            raise RefreshRejected(
                "BAD_REFRESH", "User not found or inactive", CLEAR_REFRESH_COOKIE
            )

        snapshot = await self._snapshot(db, user)
        return RefreshResult(
            token=self._access_token(snapshot),
            cookie=RefreshCookie(value=rotated.raw, expires_at=rotated.expires_at),
        )

    async def logout(self, db: AsyncSession, raw: str | None) -> RefreshCookie:
        if raw and await self._ledger.revoke(db, raw):
            logger.info("Refresh token revoked on logout")
        return CLEAR_REFRESH_COOKIE

    async def profile(self, db: AsyncSession, user_id: uuid.UUID) -> UserSnapshot:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFound("USER_NOT_FOUND", "User not found")
        return await self._snapshot(db, user)
