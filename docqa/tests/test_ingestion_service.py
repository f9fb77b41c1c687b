"""End-to-end tests for the ingestion service on an in-memory database."""

from typing import List, Sequence
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from docqa.core.constants import TEXT_UPLOAD_PATH, UploadStatus
from docqa.core.errors import EmbeddingError, ProcessingError, StorageError
from docqa.db.models.document import Document
from docqa.db.models.uploaded_document import UploadedDocument
from docqa.services.documents import DocumentService
from docqa.services.documents.chunk_store import ChunkStore
from docqa.services.ingestion.chunking import DocumentChunker
from docqa.services.ingestion.embedding import EmbeddingProvider
from docqa.services.ingestion.service import IngestionService
from docqa.services.ingestion.status import ProcessingStatusTracker, get_processing_logs
from docqa.services.ingestion.summarization import FrequencySummarizer

SOURCE_TEXT = " ".join(
    f"Section {i}: renal dosing of metformin depends on kidney function and creatinine clearance."
    for i in range(60)
)


class FakeProvider(EmbeddingProvider):
    embedding_type = "openai"
    dimensions = 1536

    def __init__(self, fail: bool = False):
        self.fail = fail

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if self.fail:
            raise RuntimeError("embedding quota exceeded")
        return [[0.01] * self.dimensions for _ in texts]


def make_service(db_session, provider=None) -> IngestionService:
    return IngestionService(
        db_session,
        storage=MagicMock(download=AsyncMock()),
        summarizer=FrequencySummarizer(),
        embedding_provider=provider or FakeProvider(),
        chunker=DocumentChunker(chunk_size=500, chunk_overlap=100),
        processing_method="python",
    )


@pytest_asyncio.fixture
async def text_upload(db_session):
    upload = UploadedDocument(
        user_id="user-1",
        title="Renal Guide",
        file_path=TEXT_UPLOAD_PATH,
        mime_type="text/plain",
        upload_metadata={"text_content": SOURCE_TEXT},
    )
    db_session.add(upload)
    await db_session.commit()
    return upload


@pytest.mark.asyncio
async def test_process_text_upload(db_session, text_upload):
    service = make_service(db_session)

    result = await service.process_document(text_upload.id)

    assert result["success"] is True
    slug = result["documentSlug"]
    assert slug.startswith("user-renal-guide-")
    assert result["stats"]["pages"] == 1
    assert result["stats"]["chunks"] > 1

    upload = await ProcessingStatusTracker(db_session).get(text_upload.id)
    assert upload.status == UploadStatus.READY.value
    assert upload.document_slug == slug

    document = await DocumentService(db_session).get_by_slug(slug)
    assert document.title == "Renal Guide"
    assert document.doc_metadata["user_document_id"] == text_upload.id
    assert document.doc_metadata["has_ai_abstract"] is False
    assert document.doc_metadata["keywords"]

    assert await ChunkStore(db_session).count_chunks(slug, "openai") == result["stats"]["chunks"]

    stages = [entry.stage for entry in await get_processing_logs(db_session, text_upload.id)]
    assert stages[0] == "download"
    assert stages[-1] == "complete"
    service.storage.download.assert_not_awaited()


@pytest.mark.asyncio
async def test_reprocessing_replaces_chunks_under_the_same_slug(db_session, text_upload):
    service = make_service(db_session)
    first = await service.process_document(text_upload.id)

    second = await service.process_document(text_upload.id)

    assert second["documentSlug"] == first["documentSlug"]
    count = await ChunkStore(db_session).count_chunks(first["documentSlug"], "openai")
    assert count == second["stats"]["chunks"]


@pytest.mark.asyncio
async def test_all_embeddings_failing_marks_error(db_session, text_upload):
    service = make_service(db_session, provider=FakeProvider(fail=True))

    with pytest.raises(EmbeddingError):
        await service.process_document(text_upload.id)

    upload = await ProcessingStatusTracker(db_session).get(text_upload.id)
    assert upload.status == UploadStatus.ERROR.value
    assert "Every embedding batch failed" in upload.error_message

    entries = await get_processing_logs(db_session, text_upload.id)
    assert entries[-1].stage == "error"
    assert entries[-1].log_metadata["failed_stage"] == "embed"


@pytest.mark.asyncio
async def test_text_upload_without_content_fails_at_download(db_session):
    upload = UploadedDocument(user_id="user-1", title="Empty", file_path=TEXT_UPLOAD_PATH, upload_metadata={})
    db_session.add(upload)
    await db_session.commit()

    with pytest.raises(ProcessingError):
        await make_service(db_session).process_document(upload.id)

    entries = await get_processing_logs(db_session, upload.id)
    assert entries[-1].log_metadata["failed_stage"] == "download"
    assert (await ProcessingStatusTracker(db_session).get(upload.id)).status == UploadStatus.ERROR.value


@pytest.mark.asyncio
async def test_failed_chunk_storage_leaves_no_document_behind(db_session, text_upload):
    service = make_service(db_session)

    with patch.object(ChunkStore, "add_batch", new_callable=AsyncMock, side_effect=RuntimeError("disk full")):
        with pytest.raises(StorageError):
            await service.process_document(text_upload.id)

    document_count = await db_session.execute(select(func.count()).select_from(Document))
    assert document_count.scalar_one() == 0
    upload = await ProcessingStatusTracker(db_session).get(text_upload.id)
    assert upload.status == UploadStatus.ERROR.value
    assert upload.document_slug is None

    result = await service.process_document(text_upload.id)

    documents = (await db_session.execute(select(Document))).scalars().all()
    assert [doc.slug for doc in documents] == [result["documentSlug"]]
    assert await ChunkStore(db_session).count_chunks(result["documentSlug"], "openai") == result["stats"]["chunks"]
