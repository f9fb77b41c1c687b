"""Embedding providers and the batched chunk embedder."""

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncOpenAI

from docqa.core.config import settings
from docqa.core.constants import EmbeddingType
from docqa.services.ingestion.chunking import Chunk

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Converts text into fixed-dimension vectors."""

    embedding_type: str
    dimensions: int

    @abstractmethod
    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed several texts in one call, preserving order."""

    async def embed(self, text: str) -> List[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Hosted embeddings through the OpenAI API."""

    embedding_type = EmbeddingType.OPENAI.value

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
    ):
        self.client = client or AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        self.model = model or settings.EMBEDDING_MODEL
        self.dimensions = dimensions or settings.EMBEDDING_DIMENSIONS

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        response = await self.client.embeddings.create(model=self.model, input=list(texts))
        # The API may return items out of order; index restores input order
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]


class LocalEmbeddingProvider(EmbeddingProvider):
    """sentence-transformers model running in-process (requires the ``local`` extra)."""

    embedding_type = EmbeddingType.LOCAL.value

    def __init__(self, model_name: Optional[str] = None, dimensions: Optional[int] = None):
        self.model_name = model_name or settings.LOCAL_EMBEDDING_MODEL
        self.dimensions = dimensions or settings.LOCAL_EMBEDDING_DIMENSIONS
        self._model = None

    def _load(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading local embedding model {self.model_name}")
            self._model = SentenceTransformer(self.model_name, device="cpu")
        return self._model

    def _encode(self, texts: List[str]) -> List[List[float]]:
        vectors = self._load().encode(texts, normalize_embeddings=True, convert_to_numpy=True)
        return [vector.tolist() for vector in vectors]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        return await asyncio.to_thread(self._encode, list(texts))


_providers: Dict[str, EmbeddingProvider] = {}


def get_embedding_provider(embedding_type: str) -> EmbeddingProvider:
    """Return the process-wide provider for an embedding type."""
    if embedding_type not in _providers:
        if embedding_type == EmbeddingType.OPENAI.value:
            _providers[embedding_type] = OpenAIEmbeddingProvider()
        elif embedding_type == EmbeddingType.LOCAL.value:
            _providers[embedding_type] = LocalEmbeddingProvider()
        else:
            raise ValueError(f"Unknown embedding type: {embedding_type}")
    return _providers[embedding_type]


@dataclass
class EmbeddedChunk:
    chunk: Chunk
    embedding: Optional[List[float]]


class ChunkEmbedder:
    """Embeds chunks in batches, degrading failed batches to null embeddings."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        batch_size: Optional[int] = None,
        batch_delay_ms: Optional[int] = None,
    ):
        self.provider = provider
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE
        self.batch_delay_ms = settings.EMBEDDING_BATCH_DELAY_MS if batch_delay_ms is None else batch_delay_ms

    def _valid(self, vector: Any) -> bool:
        return isinstance(vector, list) and len(vector) == self.provider.dimensions

    async def embed_chunks(self, chunks: Sequence[Chunk]) -> List[EmbeddedChunk]:
        """Embed chunks, returning one entry per input chunk in input order.

        Args:
            chunks: Chunks to embed

        Returns:
            EmbeddedChunk list aligned 1:1 with ``chunks``; failures carry None
        """
        results: List[EmbeddedChunk] = []
        total_batches = (len(chunks) + self.batch_size - 1) // self.batch_size
        failed = 0

        for batch_number, offset in enumerate(range(0, len(chunks), self.batch_size), start=1):
            batch = list(chunks[offset:offset + self.batch_size])
            try:
                vectors = await self.provider.embed_batch([c.content for c in batch])
                if len(vectors) != len(batch):
                    raise ValueError(f"expected {len(batch)} embeddings, got {len(vectors)}")
            except Exception as e:
                logger.error(
                    f"Embedding batch {batch_number}/{total_batches} failed, "
                    f"{len(batch)} chunks will be skipped: {e}"
                )
                vectors = [None] * len(batch)

            for chunk, vector in zip(batch, vectors):
                if vector is not None and not self._valid(vector):
                    logger.warning(
                        f"Chunk {chunk.index} embedding has {len(vector)} dimensions, "
                        f"expected {self.provider.dimensions}"
                    )
                    vector = None
                if vector is None:
                    failed += 1
                results.append(EmbeddedChunk(chunk=chunk, embedding=vector))

            if batch_number < total_batches and self.batch_delay_ms > 0:
                await asyncio.sleep(self.batch_delay_ms / 1000)

        logger.info(
            f"Embedded {len(chunks) - failed}/{len(chunks)} chunks in {total_batches} batches "
            f"with {self.provider.embedding_type}"
        )
        return results
