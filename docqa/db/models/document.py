"""Queryable document model."""

from datetime import datetime, UTC
from typing import Any, Dict, Optional
import uuid

from sqlalchemy import Boolean, DateTime, ForeignKey, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docqa.core.constants import AccessLevel, EmbeddingType
from docqa.db.base_class import Base
from docqa.db.models.owner import Owner


class Document(Base):
    """A chunked, queryable document addressed by its slug."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    title: Mapped[str] = mapped_column(String(500))
    subtitle: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    intro_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("owners.id", ondelete="SET NULL"), nullable=True, index=True
    )
    access_level: Mapped[str] = mapped_column(String(30), default=AccessLevel.OWNER_RESTRICTED.value)
    passcode: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    embedding_type: Mapped[str] = mapped_column(String(20), default=EmbeddingType.OPENAI.value)
    forced_model: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    doc_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    owner: Mapped[Optional[Owner]] = relationship(Owner, lazy="joined")

    def __repr__(self):
        return f"<Document(slug='{self.slug}', owner_id='{self.owner_id}')>"
