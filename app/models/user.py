"""
User identity + ability grants.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (Column, DateTime, ForeignKey, String,
                        UniqueConstraint, Uuid)
from sqlalchemy.orm import relationship

from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id: uuid.UUID = Column(Uuid, primary_key=True, default=uuid.uuid4)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    email: str = Column(String(320), unique=True, nullable=False, index=True)  # type: ignore[assignment]  # normalised
    password_hash: str = Column(String(128), nullable=False)  # type: ignore[assignment]
    status: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default="active",
        server_default="active",
    )  # active | disabled
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    abilities = relationship(
        "UserAbility",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class UserAbility(Base):
    __tablename__ = "user_abilities"
    __table_args__ = (UniqueConstraint("user_id", "ability", name="uq_user_ability"),)

    id: uuid.UUID = Column(Uuid, primary_key=True, default=uuid.uuid4)  # type: ignore[assignment]
    user_id: uuid.UUID = Column(  # type: ignore[assignment]
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ability: str = Column(String(100), nullable=False)  # type: ignore[assignment]  # e.g. reservation.create

    user = relationship("User", back_populates="abilities")
