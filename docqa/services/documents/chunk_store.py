"""Data access for chunk rows: inserts, deletes and hybrid candidate search."""

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Sequence, Type, Union

from sqlalchemy import delete, func, literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from docqa.core.constants import EmbeddingType
from docqa.db.models.document_chunk import DocumentChunk, DocumentChunkLocal

logger = logging.getLogger(__name__)

ChunkModel = Union[Type[DocumentChunk], Type[DocumentChunkLocal]]


def chunk_model_for(embedding_type: str) -> ChunkModel:
    """Chunk table for an embedding type."""
    if embedding_type == EmbeddingType.LOCAL.value:
        return DocumentChunkLocal
    if embedding_type == EmbeddingType.OPENAI.value:
        return DocumentChunk
    raise ValueError(f"Unknown embedding type: {embedding_type}")


@dataclass
class ChunkCandidate:
    """A chunk row scored by both retrieval signals."""

    id: int
    document_slug: str
    chunk_index: int
    content: str
    metadata: Dict[str, Any]
    similarity: float
    text_rank: float


class ChunkStore:
    """Narrow repository over the chunk tables."""

    def __init__(self, db_session: AsyncSession):
        """Initialize the store with a database session.

        Args:
            db_session: SQLAlchemy async session
        """
        self.db = db_session

    async def add_batch(self, rows: Sequence[Union[DocumentChunk, DocumentChunkLocal]]) -> None:
        """Stage a batch of chunk rows and flush them inside the current transaction."""
        self.db.add_all(list(rows))
        await self.db.flush()

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    async def delete_chunks(self, document_slug: str, embedding_type: str) -> int:
        """Delete every chunk of a document from the table for ``embedding_type``."""
        model = chunk_model_for(embedding_type)
        result = await self.db.execute(delete(model).where(model.document_slug == document_slug))
        deleted = result.rowcount or 0
        logger.info(f"Deleted {deleted} chunks for document {document_slug}")
        return deleted

    async def count_chunks(self, document_slug: str, embedding_type: str) -> int:
        model = chunk_model_for(embedding_type)
        result = await self.db.execute(
            select(func.count()).select_from(model).where(model.document_slug == document_slug)
        )
        return int(result.scalar_one())

    async def hybrid_candidates(
        self,
        document_slug: str,
        query_embedding: List[float],
        query_text: str,
        embedding_type: str,
        limit: int,
        similarity_threshold: float,
        vector_weight: float = 0.7,
        text_weight: float = 0.3,
    ) -> List[ChunkCandidate]:
        """Chunks of one document that pass the similarity threshold or match the text query.

        Similarity is 1 - cosine distance; text rank is ts_rank over an
        english tsvector of the content.
        """
        model = chunk_model_for(embedding_type)
        similarity = (literal(1.0) - model.embedding.cosine_distance(query_embedding)).label("similarity")
        tsvector = func.to_tsvector("english", model.content)
        tsquery = func.plainto_tsquery("english", query_text)
        text_rank = func.coalesce(func.ts_rank(tsvector, tsquery), 0.0).label("text_rank")
        combined = vector_weight * similarity + text_weight * text_rank

        stmt = (
            select(
                model.id,
                model.document_slug,
                model.chunk_index,
                model.content,
                model.chunk_metadata.label("chunk_metadata"),
                similarity,
                text_rank,
            )
            .where(model.document_slug == document_slug)
            .where(
                or_(
                    (literal(1.0) - model.embedding.cosine_distance(query_embedding)) > similarity_threshold,
                    tsvector.op("@@")(tsquery),
                )
            )
            .order_by(combined.desc(), model.chunk_index)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return [
            ChunkCandidate(
                id=row.id,
                document_slug=row.document_slug,
                chunk_index=row.chunk_index,
                content=row.content,
                metadata=row.chunk_metadata or {},
                similarity=float(row.similarity or 0.0),
                text_rank=float(row.text_rank or 0.0),
            )
            for row in result.all()
        ]
