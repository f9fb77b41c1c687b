"""Process-local memoization of query embeddings."""

from collections import OrderedDict
import hashlib
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from docqa.core.config import settings
from docqa.services.ingestion.embedding import get_embedding_provider

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], Awaitable[List[float]]]


class QueryEmbeddingCache:
    """TTL + LRU cache keyed on (query text, embedding type).

    Concurrent identical misses may both compute; the last write wins.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_size: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.EMBEDDING_CACHE_TTL_SECONDS
        self.max_size = max_size or settings.EMBEDDING_CACHE_MAX_SIZE
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, List[float]]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(text: str, embedding_type: str) -> str:
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return f"{embedding_type}:{digest}"

    def get(self, text: str, embedding_type: str) -> Optional[List[float]]:
        key = self._key(text, embedding_type)
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, vector = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return vector

    def set(self, text: str, embedding_type: str, vector: List[float]) -> None:
        key = self._key(text, embedding_type)
        self._entries[key] = (self._clock(), vector)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    async def get_or_embed(self, text: str, embedding_type: str, embed: Optional[EmbedFn] = None) -> List[float]:
        """Return the cached vector or compute, store and return it.

        Args:
            text: Query text
            embedding_type: Provider tag, part of the key
            embed: Embedding coroutine, defaults to the provider for ``embedding_type``

        Returns:
            Query embedding
        """
        cached = self.get(text, embedding_type)
        if cached is not None:
            self.hits += 1
            logger.debug(f"Query embedding cache hit ({embedding_type})")
            return cached

        self.misses += 1
        if embed is None:
            embed = get_embedding_provider(embedding_type).embed
        vector = await embed(text)
        self.set(text, embedding_type, vector)
        return vector

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, int]:
        return {"size": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        return len(self._entries)


_cache: Optional[QueryEmbeddingCache] = None


def get_query_embedding_cache() -> QueryEmbeddingCache:
    global _cache
    if _cache is None:
        _cache = QueryEmbeddingCache()
    return _cache
