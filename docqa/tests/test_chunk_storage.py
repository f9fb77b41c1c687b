"""Tests for the batched chunk writer."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from docqa.core.errors import StorageError
from docqa.db.models.document_chunk import DocumentChunk, DocumentChunkLocal
from docqa.services.documents.chunk_store import ChunkStore, chunk_model_for
from docqa.services.ingestion.chunk_storage import ChunkStoreWriter
from docqa.services.ingestion.chunking import Chunk
from docqa.services.ingestion.embedding import EmbeddedChunk


@pytest.fixture
def store():
    store = MagicMock(spec=ChunkStore)
    store.add_batch = AsyncMock()
    store.commit = AsyncMock()
    store.rollback = AsyncMock()
    store.delete_chunks = AsyncMock(return_value=4)
    return store


def embedded(count: int, missing=()):
    items = []
    for i in range(count):
        chunk = Chunk(index=i, content=f"text {i}", char_start=i, char_end=i + 6, page_number=i + 1, page_markers_found=2)
        items.append(EmbeddedChunk(chunk=chunk, embedding=None if i in missing else [0.5] * 3))
    return items


def test_chunk_model_for():
    assert chunk_model_for("openai") is DocumentChunk
    assert chunk_model_for("local") is DocumentChunkLocal
    with pytest.raises(ValueError):
        chunk_model_for("other")


@pytest.mark.asyncio
async def test_store_chunks_skips_missing_embeddings(store):
    writer = ChunkStoreWriter(store, batch_size=2)

    stored = await writer.store_chunks("renal-guide", embedded(5, missing={1}), "openai", document_id="doc-1")

    assert stored == 4
    batches = [call.args[0] for call in store.add_batch.await_args_list]
    assert [len(b) for b in batches] == [2, 2]
    rows = [row for batch in batches for row in batch]
    assert [row.chunk_index for row in rows] == [0, 2, 3, 4]
    assert all(isinstance(row, DocumentChunk) for row in rows)
    assert rows[0].document_id == "doc-1"
    assert rows[1].chunk_metadata["page_number"] == 3
    store.commit.assert_awaited_once()
    store.delete_chunks.assert_not_awaited()


@pytest.mark.asyncio
async def test_store_chunks_replace_deletes_first(store):
    order = []
    store.delete_chunks.side_effect = lambda *args: order.append("delete")
    store.add_batch.side_effect = lambda rows: order.append("add")

    await ChunkStoreWriter(store, batch_size=10).store_chunks("renal-guide", embedded(2), "local", replace=True)

    assert order == ["delete", "add"]
    store.delete_chunks.assert_awaited_once_with("renal-guide", "local")
    rows = store.add_batch.await_args.args[0]
    assert all(isinstance(row, DocumentChunkLocal) for row in rows)


@pytest.mark.asyncio
async def test_store_chunks_failure_rolls_back(store):
    store.add_batch.side_effect = [None, RuntimeError("connection reset")]

    with pytest.raises(StorageError) as exc_info:
        await ChunkStoreWriter(store, batch_size=1).store_chunks("renal-guide", embedded(3), "openai")

    assert exc_info.value.stage == "store"
    assert exc_info.value.context["chunks"] == 3
    store.rollback.assert_awaited_once()
    store.commit.assert_not_awaited()
