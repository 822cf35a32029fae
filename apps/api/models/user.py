"""User model."""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class User(Base):
    """Locally mirrored user from the external identity provider."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, nullable=False, index=True)  # not unique: owned by the identity provider
    name = Column(String, nullable=True)
    tenant_id = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False, default="viewer")  # viewer, editor, admin
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    media_items = relationship("MediaItem", back_populates="user", cascade="all, delete-orphan")
