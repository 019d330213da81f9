"""
Room class (room type) — a property-scoped resource.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Uuid

from app.db.base import Base


class RoomClass(Base):
    __tablename__ = "room_classes"
    __table_args__ = (Index("ix_room_classes_property_name", "property_id", "name"),)

    id: uuid.UUID = Column(Uuid, primary_key=True, default=uuid.uuid4)  # type: ignore[assignment]
    property_id: uuid.UUID = Column(  # type: ignore[assignment]
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False
    )
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    code: str | None = Column(String(20), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
