"""Uploaded media item model."""

from sqlalchemy import Column, String, DateTime, Float, ForeignKey, Index, Integer
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


MEDIA_STATUSES = ("uploading", "processing", "completed", "failed")
SENSITIVITY_STATUSES = ("pending", "safe", "flagged")


class MediaItem(Base):
    """Uploaded video and the outcome of its processing pipeline."""

    __tablename__ = "media_items"
    __table_args__ = (
        Index("ix_media_items_user_tenant", "user_id", "tenant_id"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    file_path = Column(String, nullable=False)  # remote URL or local path
    storage_key = Column(String, nullable=True)
    original_filename = Column(String, nullable=True)
    mime_type = Column(String, nullable=False)
    file_size_bytes = Column(Integer, nullable=True)
    thumbnail_path = Column(String, nullable=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    tenant_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="uploading", index=True)
    processing_progress = Column(Integer, nullable=False, default=0)
    sensitivity_status = Column(String, nullable=False, default="pending", index=True)
    flag_reason = Column(String, nullable=False, default="")
    sensitivity_confidence = Column(Float, nullable=True)
    flagged_frames = Column(Integer, nullable=True)
    total_frames = Column(Integer, nullable=True)
    duration_seconds = Column(Float, nullable=False, default=0.0)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    codec = Column(String, nullable=True)
    error_message = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="media_items")
