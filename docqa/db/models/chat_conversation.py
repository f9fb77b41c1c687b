"""Chat turn log model."""

from datetime import datetime, UTC
from typing import Any, Dict, List, Optional
import uuid

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from docqa.db.base_class import Base


class ChatConversation(Base):
    """One row per chat turn. Banned rows never carry a share token."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id: Mapped[str] = mapped_column(String(36), index=True)
    question: Mapped[str] = mapped_column(Text)
    response: Mapped[str] = mapped_column(Text)
    model: Mapped[str] = mapped_column(String(50))
    response_time_ms: Mapped[int] = mapped_column(Integer)
    chunks_used: Mapped[int] = mapped_column(Integer, default=0)
    retrieval_time_ms: Mapped[int] = mapped_column(Integer, default=0)
    document_ids: Mapped[List[str]] = mapped_column(JSON, default=list)
    document_slugs: Mapped[List[str]] = mapped_column(JSON, default=list)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    share_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    banned: Mapped[bool] = mapped_column(Boolean, default=False)
    ban_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    conversation_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
