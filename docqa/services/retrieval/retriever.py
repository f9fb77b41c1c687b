"""Hybrid chunk retrieval and the owner-driven chunk limit."""

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Optional, Sequence

from docqa.core.config import settings
from docqa.core.constants import MIXED_OWNER_NAME, MIXED_OWNER_SLUG, EmbeddingType
from docqa.db.models.document import Document
from docqa.services.documents.chunk_store import ChunkCandidate, ChunkStore

logger = logging.getLogger(__name__)


@dataclass
class OwnerInfo:
    """Owner settings that apply to one chat query."""

    owner_slug: Optional[str]
    owner_name: Optional[str]
    default_chunk_limit: int
    forced_model: Optional[str] = None
    chunk_limit_source: str = "owner"

    @property
    def is_mixed(self) -> bool:
        return self.owner_slug == MIXED_OWNER_SLUG

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_slug": self.owner_slug,
            "owner_name": self.owner_name,
            "default_chunk_limit": self.default_chunk_limit,
            "forced_model": self.forced_model,
        }


def mixed_owner_info() -> OwnerInfo:
    return OwnerInfo(
        owner_slug=MIXED_OWNER_SLUG,
        owner_name=MIXED_OWNER_NAME,
        default_chunk_limit=settings.DEFAULT_CHUNK_LIMIT,
        chunk_limit_source="default",
    )


def resolve_owner_info(documents: Sequence[Document]) -> Optional[OwnerInfo]:
    """Owner info for the queried documents.

    One document, or several sharing one owner, use that owner's settings.
    Documents spread over different owners (ownerless counts as its own
    group) get the mixed placeholder with the global default limit.
    """
    if not documents:
        return None

    owner_ids = {doc.owner_id for doc in documents}
    if len(owner_ids) > 1:
        return mixed_owner_info()

    owner = documents[0].owner
    if owner is None:
        return None
    return OwnerInfo(
        owner_slug=owner.slug,
        owner_name=owner.name,
        default_chunk_limit=owner.default_chunk_limit,
        forced_model=owner.forced_model,
    )


def resolve_chunk_limit(owner_info: Optional[OwnerInfo]) -> int:
    """Chunk limit for a query, clamped into (0, MAX_CHUNK_LIMIT]."""
    if owner_info is None or not owner_info.default_chunk_limit:
        return settings.DEFAULT_CHUNK_LIMIT
    return max(1, min(owner_info.default_chunk_limit, settings.MAX_CHUNK_LIMIT))


def chunk_limit_source(owner_info: Optional[OwnerInfo]) -> str:
    if owner_info is None:
        return "default"
    return owner_info.chunk_limit_source


def resolve_embedding_type(requested: Optional[str], document_count: int) -> str:
    """Embedding type used for retrieval.

    Vectors from different models are not comparable, so any query spanning
    more than one document is pinned to the hosted provider.
    """
    if document_count > 1:
        if requested and requested != EmbeddingType.OPENAI.value:
            logger.info(f"Multi-document query: using openai embeddings instead of {requested}")
        return EmbeddingType.OPENAI.value
    return requested or EmbeddingType.OPENAI.value


def similarity_threshold(embedding_type: str) -> float:
    if embedding_type == EmbeddingType.LOCAL.value:
        return settings.HYBRID_SIMILARITY_THRESHOLD_LOCAL
    return settings.HYBRID_SIMILARITY_THRESHOLD


@dataclass
class RetrievedChunk:
    """A chunk selected for the prompt, with its scores."""

    document_slug: str
    chunk_index: int
    content: str
    page_number: Optional[int]
    similarity: float
    text_rank: float
    combined_score: float
    metadata: Dict[str, Any]

    @classmethod
    def from_candidate(cls, candidate: ChunkCandidate, vector_weight: float, text_weight: float) -> "RetrievedChunk":
        return cls(
            document_slug=candidate.document_slug,
            chunk_index=candidate.chunk_index,
            content=candidate.content,
            page_number=candidate.metadata.get("page_number"),
            similarity=candidate.similarity,
            text_rank=candidate.text_rank,
            combined_score=vector_weight * candidate.similarity + text_weight * candidate.text_rank,
            metadata=candidate.metadata,
        )


class ChunkRetriever:
    """Hybrid (vector + full-text) retrieval across one or more documents."""

    def __init__(
        self,
        store: ChunkStore,
        vector_weight: Optional[float] = None,
        text_weight: Optional[float] = None,
    ):
        """Initialize the retriever.

        Args:
            store: Chunk repository
            vector_weight: Weight of cosine similarity in the combined score
            text_weight: Weight of the full-text rank in the combined score
        """
        self.store = store
        self.vector_weight = settings.HYBRID_VECTOR_WEIGHT if vector_weight is None else vector_weight
        self.text_weight = settings.HYBRID_TEXT_WEIGHT if text_weight is None else text_weight

    async def retrieve(
        self,
        query_embedding: List[float],
        query_text: str,
        embedding_type: str,
        document_slugs: Sequence[str],
        chunk_limit: int,
        threshold: Optional[float] = None,
    ) -> List[RetrievedChunk]:
        """Top chunks for the query.

        Each document contributes at most ``chunk_limit`` chunks. The merged
        list is ordered by combined score, then by the order the documents
        were requested in, then by chunk index, so equal scores always come
        back in the same order.

        Args:
            query_embedding: Query vector of the ``embedding_type`` dimension
            query_text: Raw query for the full-text signal
            embedding_type: Selects the chunk table
            document_slugs: Documents to search
            chunk_limit: Per-document cap
            threshold: Minimum cosine similarity for vector-only matches

        Returns:
            Ordered chunks with similarity, text rank and combined score
        """
        threshold = similarity_threshold(embedding_type) if threshold is None else threshold
        position = {slug: i for i, slug in enumerate(document_slugs)}

        retrieved: List[RetrievedChunk] = []
        for slug in document_slugs:
            candidates = await self.store.hybrid_candidates(
                slug,
                query_embedding,
                query_text,
                embedding_type,
                limit=chunk_limit,
                similarity_threshold=threshold,
                vector_weight=self.vector_weight,
                text_weight=self.text_weight,
            )
            retrieved.extend(
                RetrievedChunk.from_candidate(c, self.vector_weight, self.text_weight)
                for c in candidates[:chunk_limit]
            )

        retrieved.sort(key=lambda c: (-c.combined_score, position.get(c.document_slug, 0), c.chunk_index))

        if len(document_slugs) > 1:
            per_document: Dict[str, int] = {}
            for chunk in retrieved:
                per_document[chunk.document_slug] = per_document.get(chunk.document_slug, 0) + 1
            logger.info(f"Retrieved {len(retrieved)} chunks ({embedding_type}), per document: {per_document}")
        else:
            logger.info(f"Retrieved {len(retrieved)} chunks ({embedding_type}) with limit {chunk_limit}")
        return retrieved


def similarity_stats(chunks: Sequence[RetrievedChunk]) -> Dict[str, Any]:
    """count/avg/max/min of the vector similarities, rounded to 3 places."""
    if not chunks:
        return {"count": 0, "avg": 0, "max": 0, "min": 0}
    values = [c.similarity for c in chunks]
    return {
        "count": len(values),
        "avg": round(sum(values) / len(values), 3),
        "max": round(max(values), 3),
        "min": round(min(values), 3),
    }
