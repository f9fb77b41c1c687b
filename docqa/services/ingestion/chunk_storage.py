"""Persist embedded chunks in bounded batches."""

import logging
from typing import Optional, Sequence

from docqa.core.config import settings
from docqa.core.errors import StorageError
from docqa.services.documents.chunk_store import ChunkStore, chunk_model_for
from docqa.services.ingestion.embedding import EmbeddedChunk

logger = logging.getLogger(__name__)


class ChunkStoreWriter:
    """Writes chunk rows for one document inside a single transaction.

    Chunks whose embedding failed are dropped before any row is built. Any
    insert failure rolls back every batch and raises ``StorageError``.
    """

    def __init__(self, store: ChunkStore, batch_size: Optional[int] = None):
        self.store = store
        self.batch_size = batch_size or settings.CHUNK_INSERT_BATCH_SIZE

    async def store_chunks(
        self,
        document_slug: str,
        embedded_chunks: Sequence[EmbeddedChunk],
        embedding_type: str,
        document_id: Optional[str] = None,
        replace: bool = False,
    ) -> int:
        """Store chunks that have an embedding.

        Args:
            document_slug: Slug of the owning document
            embedded_chunks: Embedder output, aligned with the chunker output
            embedding_type: Selects the chunk table
            document_id: Optional document id stored alongside the slug
            replace: Delete the existing chunks of the slug in the same transaction

        Returns:
            Number of chunk rows stored
        """
        model = chunk_model_for(embedding_type)
        rows = [
            model(
                document_slug=document_slug,
                document_id=document_id,
                chunk_index=item.chunk.index,
                content=item.chunk.content,
                embedding=item.embedding,
                chunk_metadata=item.chunk.storage_metadata(),
            )
            for item in embedded_chunks
            if item.embedding is not None
        ]
        skipped = len(embedded_chunks) - len(rows)
        if skipped:
            logger.warning(f"Skipping {skipped} chunks without embeddings for {document_slug}")

        total_batches = (len(rows) + self.batch_size - 1) // self.batch_size
        try:
            if replace:
                await self.store.delete_chunks(document_slug, embedding_type)
            for batch_number, offset in enumerate(range(0, len(rows), self.batch_size), start=1):
                await self.store.add_batch(rows[offset:offset + self.batch_size])
                logger.debug(f"Staged chunk batch {batch_number}/{total_batches} for {document_slug}")
            await self.store.commit()
        except Exception as e:
            await self.store.rollback()
            logger.error(f"Failed to store chunks for {document_slug}: {e}")
            raise StorageError(
                f"Failed to store chunks: {e}",
                context={"document_slug": document_slug, "chunks": len(rows)},
            ) from e

        logger.info(f"Stored {len(rows)} chunks for {document_slug} in {total_batches} batches")
        return len(rows)
