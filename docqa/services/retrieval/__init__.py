from docqa.services.retrieval.embedding_cache import QueryEmbeddingCache, get_query_embedding_cache
from docqa.services.retrieval.retriever import (
    ChunkRetriever,
    OwnerInfo,
    RetrievedChunk,
    resolve_chunk_limit,
    resolve_embedding_type,
    resolve_owner_info,
)

__all__ = [
    "ChunkRetriever",
    "OwnerInfo",
    "QueryEmbeddingCache",
    "RetrievedChunk",
    "get_query_embedding_cache",
    "resolve_chunk_limit",
    "resolve_embedding_type",
    "resolve_owner_info",
]
