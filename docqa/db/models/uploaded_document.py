"""Upload job model tracking processing status."""

from datetime import datetime, UTC
from typing import Any, Dict, Optional
import uuid

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from docqa.core.constants import UploadStatus
from docqa.db.base_class import Base


class UploadedDocument(Base):
    """One row per user upload job.

    Status moves along pending -> processing -> ready/error and is only
    changed by the ingestion pipeline through the status tracker.
    """

    __tablename__ = "user_documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    owner_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("owners.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(500))
    file_path: Mapped[str] = mapped_column(String(1000))
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=UploadStatus.PENDING.value, index=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    document_slug: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    upload_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    def __repr__(self):
        return f"<UploadedDocument(id='{self.id}', status='{self.status}')>"

    def to_dict(self):
        """Convert model to dict."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "owner_id": self.owner_id,
            "title": self.title,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "status": self.status,
            "error_message": self.error_message,
            "processing_method": self.processing_method,
            "document_slug": self.document_slug,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
