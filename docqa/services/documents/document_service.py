"""Document and owner lookups plus document creation for ingestion."""

from datetime import datetime, UTC
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docqa.core.constants import AccessLevel, EmbeddingType
from docqa.db.models.document import Document
from docqa.db.models.owner import Owner, UserOwnerAccess

logger = logging.getLogger(__name__)

SLUG_BASE_MAX_LENGTH = 50


def slugify(value: str, max_length: int = SLUG_BASE_MAX_LENGTH) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug[:max_length].strip("-") or "document"


def generate_document_slug(title: str, now: Optional[datetime] = None) -> str:
    """Slug of the form ``user-<title>-<epoch ms>``."""
    now = now or datetime.now(UTC)
    return f"user-{slugify(title)}-{int(now.timestamp() * 1000)}"


def build_intro_message(title: str, abstract: Optional[str]) -> str:
    """Welcome text shown before the first question, embedding the abstract when present."""
    intro = f"Ask questions about <strong>{title}</strong>."
    if abstract:
        intro += (
            '<div class="document-abstract"><p><strong>Document Summary</strong></p>'
            f"<p>{abstract}</p></div>"
        )
    return intro


class DocumentService:
    """Service for reading and writing documents and owners."""

    def __init__(self, db_session: AsyncSession):
        """Initialize the service with a database session.

        Args:
            db_session: SQLAlchemy async session
        """
        self.db = db_session

    async def get_by_slug(self, slug: str, active_only: bool = True) -> Optional[Document]:
        query = select(Document).where(Document.slug == slug)
        if active_only:
            query = query.where(Document.active.is_(True))
        result = await self.db.execute(query)
        return result.scalars().first()

    async def get_by_slugs(self, slugs: Sequence[str], active_only: bool = True) -> Dict[str, Document]:
        """Documents keyed by slug; missing slugs are absent from the result."""
        query = select(Document).where(Document.slug.in_(list(slugs)))
        if active_only:
            query = query.where(Document.active.is_(True))
        result = await self.db.execute(query)
        return {doc.slug: doc for doc in result.scalars().unique().all()}

    async def get_owner(self, owner_id: str) -> Optional[Owner]:
        result = await self.db.execute(select(Owner).where(Owner.id == owner_id))
        return result.scalars().first()

    async def get_memberships(self, user_id: str) -> List[UserOwnerAccess]:
        result = await self.db.execute(select(UserOwnerAccess).where(UserOwnerAccess.user_id == user_id))
        return list(result.scalars().all())

    async def create_document(
        self,
        slug: str,
        title: str,
        owner_id: Optional[str],
        intro_message: Optional[str],
        metadata: Dict[str, Any],
        embedding_type: str = EmbeddingType.OPENAI.value,
        access_level: str = AccessLevel.OWNER_RESTRICTED.value,
        commit: bool = True,
    ) -> Document:
        """Insert a new active document row.

        Args:
            slug: Globally unique slug
            title: Document title
            owner_id: Owning tenant or None
            intro_message: Welcome text, may embed the abstract
            metadata: Serialized document metadata
            embedding_type: Embedding provider tag for the chunk set
            access_level: Initial access level
            commit: Commit now, or only flush so the caller commits the row
                together with its chunks

        Returns:
            The created Document
        """
        document = Document(
            slug=slug,
            title=title,
            owner_id=owner_id,
            intro_message=intro_message,
            doc_metadata=metadata,
            embedding_type=embedding_type,
            access_level=access_level,
            active=True,
        )
        try:
            self.db.add(document)
            if commit:
                await self.db.commit()
            else:
                await self.db.flush()
            await self.db.refresh(document)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error creating document {slug}: {e}")
            raise

        logger.info(f"Created document {slug} (owner={owner_id}, embedding={embedding_type})")
        return document

    async def update_document(self, document: Document, commit: bool = True, **fields: Any) -> Document:
        """Update fields of an existing document in place, keeping its slug.

        With ``commit=False`` the change is only flushed and lands with the
        caller's next commit.
        """
        fields.pop("slug", None)
        for key, value in fields.items():
            setattr(document, key, value)
        document.updated_at = datetime.now(UTC)
        try:
            if commit:
                await self.db.commit()
            else:
                await self.db.flush()
            await self.db.refresh(document)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error updating document {document.slug}: {e}")
            raise
        return document
