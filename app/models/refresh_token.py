"""
Server-side ledger of issued refresh tokens (hash only, never the raw value).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String, Uuid

from app.db.base import Base


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id: uuid.UUID = Column(Uuid, primary_key=True, default=uuid.uuid4)  # type: ignore[assignment]
    user_id: uuid.UUID = Column(  # type: ignore[assignment]
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash: str = Column(String(64), unique=True, nullable=False, index=True)  # type: ignore[assignment]  # sha256 hex
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    expires_at: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    revoked_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
