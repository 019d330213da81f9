"""
Property (hotel) + user membership.

``user_properties`` is the only fact the authorization gate consults.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (Column, DateTime, ForeignKey, String, Text,
                        UniqueConstraint, Uuid)

from app.db.base import Base


class Property(Base):
    __tablename__ = "properties"

    id: uuid.UUID = Column(Uuid, primary_key=True, default=uuid.uuid4)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    description: str | None = Column(Text, nullable=True)  # type: ignore[assignment]
    address: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    city: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    country: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    phone: str | None = Column(String(30), nullable=True)  # type: ignore[assignment]
    email: str | None = Column(String(320), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )


class UserProperty(Base):
    __tablename__ = "user_properties"
    __table_args__ = (
        UniqueConstraint("user_id", "property_id", name="uq_user_property"),
    )

    id: uuid.UUID = Column(Uuid, primary_key=True, default=uuid.uuid4)  # type: ignore[assignment]
    user_id: uuid.UUID = Column(  # type: ignore[assignment]
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    property_id: uuid.UUID = Column(  # type: ignore[assignment]
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
