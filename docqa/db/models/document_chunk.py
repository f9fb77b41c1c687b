"""Chunk tables, one per embedding dimensionality."""

from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from docqa.db.base_class import Base


class ChunkColumns:
    """Columns shared by both chunk tables."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chunk_index: Mapped[int] = mapped_column(Integer)
    content: Mapped[str] = mapped_column(Text)
    chunk_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    @declared_attr
    def document_slug(cls) -> Mapped[str]:
        return mapped_column(String(120), ForeignKey("documents.slug"), index=True)

    @declared_attr
    def document_id(cls) -> Mapped[Optional[str]]:
        return mapped_column(String(36), ForeignKey("documents.id"), nullable=True, index=True)

    @property
    def page_number(self) -> Optional[int]:
        return (self.chunk_metadata or {}).get("page_number")


class DocumentChunk(ChunkColumns, Base):
    """Chunk embedded with the hosted provider (1536 dimensions)."""

    __table_args__ = (UniqueConstraint("document_slug", "chunk_index", name="uq_document_chunks_slug_index"),)

    embedding: Mapped[List[float]] = mapped_column(Vector(1536))


class DocumentChunkLocal(ChunkColumns, Base):
    """Chunk embedded with the local sentence-transformers model (384 dimensions)."""

    __tablename__ = "document_chunks_local"
    __table_args__ = (UniqueConstraint("document_slug", "chunk_index", name="uq_document_chunks_local_slug_index"),)

    embedding: Mapped[List[float]] = mapped_column(Vector(384))
