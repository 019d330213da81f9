"""Refresh token issuance, single-use rotation and revocation."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import TokenIssuer
from app.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)


class RefreshTokenNotFound(LookupError):
    """No live (unrevoked, unexpired) record matches the presented token."""


@dataclass(frozen=True)
class IssuedRefreshToken:
    raw: str
    expires_at: datetime


@dataclass(frozen=True)
class RotatedRefreshToken:
    user_id: uuid.UUID
    raw: str
    expires_at: datetime


class RefreshTokenLedger:
    """Persistent log of refresh-token hashes.

    The raw token only ever leaves through the return value of ``issue`` /
    ``consume_and_rotate``; the table stores its SHA-256 digest.
    """

    def __init__(self, issuer: TokenIssuer, ttl: timedelta = timedelta(days=7)) -> None:
        self._issuer = issuer
        self._ttl = ttl

    def _add(self, db: AsyncSession, user_id: uuid.UUID, now: datetime) -> IssuedRefreshToken:
        raw, token_hash = self._issuer.generate_refresh_secret()
        expires_at = now + self._ttl
        db.add(
            RefreshToken(
                user_id=user_id,
                token_hash=token_hash,
                created_at=now,
                expires_at=expires_at,
            )
        )
        return IssuedRefreshToken(raw=raw, expires_at=expires_at)

    async def issue(self, db: AsyncSession, user_id: uuid.UUID) -> IssuedRefreshToken:
        issued = self._add(db, user_id, datetime.now(timezone.utc))
        try:
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return issued

    async def consume_and_rotate(self, db: AsyncSession, raw: str) -> RotatedRefreshToken:
        """Swap a live token for a new one in a single transaction.

        The old row is deleted before the successor is inserted; when two
        callers race on the same token only one delete reports a row, the
        other gets ``RefreshTokenNotFound``.
        """
        token_hash = self._issuer.hash_for_lookup(raw)
        now = datetime.now(timezone.utc)
        try:
            result = await db.execute(
                select(RefreshToken.user_id).where(
                    RefreshToken.token_hash == token_hash,
                    RefreshToken.revoked_at.is_(None),
                    RefreshToken.expires_at > now,
                )
            )
            user_id = result.scalar_one_or_none()
            if user_id is None:
                raise RefreshTokenNotFound(token_hash)

            deleted = await db.execute(
                delete(RefreshToken)
                .where(
                    RefreshToken.token_hash == token_hash,
                    RefreshToken.revoked_at.is_(None),
                )
                .execution_options(synchronize_session=False)
            )
            if deleted.rowcount != 1:
                # Lost the race against a concurrent rotation
                raise RefreshTokenNotFound(token_hash)

            issued = self._add(db, user_id, now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        return RotatedRefreshToken(user_id=user_id, raw=issued.raw, expires_at=issued.expires_at)

    async def revoke(self, db: AsyncSession, raw: str) -> bool:
        """Mark the matching record revoked. Returns whether anything changed."""
        token_hash = self._issuer.hash_for_lookup(raw)
        try:
            result = await db.execute(
                update(RefreshToken)
                .where(
                    RefreshToken.token_hash == token_hash,
                    RefreshToken.revoked_at.is_(None),
                )
                .values(revoked_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return result.rowcount > 0
