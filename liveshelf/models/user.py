"""User identity mirrored from the authentication provider."""
from datetime import UTC, datetime

from pydantic import BaseModel, field_serializer
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from liveshelf.core.db import Base


class User(Base):
    """Signed-in account; only ``id`` is consumed by the catalogue."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class UserResponse(BaseModel):
    """Schema for the signed-in user in API responses."""

    id: int
    email: str
    display_name: str | None = None
    created_at: datetime

    @field_serializer("created_at")
    def serialize_datetime(self, dt: datetime, _info) -> str:
        """Serialize to ISO8601 with a 'Z' suffix (naive values are UTC)."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        else:
            dt = dt.astimezone(UTC)
        return dt.isoformat().replace("+00:00", "Z")

    class Config:
        from_attributes = True
