"""Owner (tenant) model and user memberships."""

from datetime import datetime, UTC
from typing import Any, Dict, Optional
import uuid

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from docqa.db.base_class import Base


class Owner(Base):
    """A tenant boundary that governs document visibility and retrieval tuning."""

    __table_args__ = (
        CheckConstraint(
            "default_chunk_limit > 0 AND default_chunk_limit <= 200",
            name="ck_owners_default_chunk_limit",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    default_chunk_limit: Mapped[int] = mapped_column(Integer, default=50)
    forced_model: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    owner_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    def __repr__(self):
        return f"<Owner(slug='{self.slug}', chunk_limit={self.default_chunk_limit})>"


class UserOwnerAccess(Base):
    """Membership of a user in an owner group."""

    __tablename__ = "user_owner_access"
    __table_args__ = (UniqueConstraint("user_id", "owner_id", name="uq_user_owner_access"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("owners.id", ondelete="CASCADE"), index=True)
    role: Mapped[str] = mapped_column(String(30), default="member")  # member, owner_admin
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
