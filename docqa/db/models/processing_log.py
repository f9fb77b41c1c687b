"""Append-only ingestion audit trail."""

from datetime import datetime, UTC
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from docqa.db.base_class import Base


class ProcessingLogEntry(Base):
    """A stage-tagged progress record for one upload job."""

    __tablename__ = "document_processing_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_documents.id", ondelete="CASCADE"), index=True
    )
    document_slug: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    stage: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20))
    message: Mapped[str] = mapped_column(Text)
    processing_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    log_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    def to_dict(self):
        """Convert model to dict."""
        return {
            "id": self.id,
            "user_document_id": self.user_document_id,
            "document_slug": self.document_slug,
            "stage": self.stage,
            "status": self.status,
            "message": self.message,
            "processing_method": self.processing_method,
            "metadata": self.log_metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
