"""Ingestion service: turns one uploaded document into a queryable chunk set."""

import asyncio
import logging
import os
import time
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docqa.core.config import settings
from docqa.core.constants import TEXT_UPLOAD_PATH, ProcessingStage, UploadStatus
from docqa.core.errors import EmbeddingError, ProcessingError
from docqa.schemas.document import IngestionMetadata
from docqa.services.documents.chunk_store import ChunkStore
from docqa.services.documents.document_service import (
    DocumentService,
    build_intro_message,
    generate_document_slug,
)
from docqa.services.ingestion.chunk_storage import ChunkStoreWriter
from docqa.services.ingestion.chunking import DocumentChunker
from docqa.services.ingestion.embedding import ChunkEmbedder, EmbeddingProvider, get_embedding_provider
from docqa.services.ingestion.extraction import extract_text
from docqa.services.ingestion.file_storage import StorageBackend, get_storage_backend
from docqa.services.ingestion.status import ProcessingLogger, ProcessingStatusTracker
from docqa.services.ingestion.summarization import DocumentSummary, Summarizer, get_summarizer

logger = logging.getLogger(__name__)


class IngestionService:
    """Runs extract -> chunk -> {summarize, embed} -> store for uploaded documents."""

    def __init__(
        self,
        db_session: AsyncSession,
        storage: Optional[StorageBackend] = None,
        summarizer: Optional[Summarizer] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        chunker: Optional[DocumentChunker] = None,
        processing_method: Optional[str] = None,
    ):
        """Initialize the ingestion service.

        Args:
            db_session: SQLAlchemy async session
            storage: Object storage backend for uploaded files
            summarizer: Abstract/keyword strategy
            embedding_provider: Provider for chunk embeddings
            chunker: Chunker with the configured size and overlap
            processing_method: Tag recorded on the upload and its log entries
        """
        self.db = db_session
        self.storage = storage or get_storage_backend()
        self.summarizer = summarizer or get_summarizer()
        self.embedding_provider = embedding_provider or get_embedding_provider(settings.INGESTION_EMBEDDING_TYPE)
        self.chunker = chunker or DocumentChunker(
            chunk_size=settings.CHUNK_SIZE_TOKENS,
            chunk_overlap=settings.CHUNK_OVERLAP_TOKENS,
            chars_per_token=settings.CHARS_PER_TOKEN,
        )
        self.processing_method = processing_method or settings.PROCESSING_METHOD
        self.tracker = ProcessingStatusTracker(db_session)
        self.documents = DocumentService(db_session)
        self.chunk_store = ChunkStore(db_session)

    @staticmethod
    def _document_kind(file_path: str, mime_type: Optional[str]) -> str:
        if file_path == TEXT_UPLOAD_PATH:
            return "text"
        if mime_type:
            return mime_type
        return os.path.splitext(file_path)[1].lower()

    async def _load_source(self, file_path: str, upload_metadata: Dict[str, Any]) -> Any:
        if file_path == TEXT_UPLOAD_PATH:
            text = (upload_metadata or {}).get("text_content")
            if not text:
                raise ProcessingError("Text upload has no content", stage=ProcessingStage.DOWNLOAD.value)
            return text
        return await self.storage.download(file_path)

    async def _stage_completed(
        self,
        plog: ProcessingLogger,
        upload_id: str,
        stage: ProcessingStage,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a finished stage and refresh the upload heartbeat."""
        await plog.completed(stage, message, metadata)
        await self.tracker.touch(upload_id)

    async def _summarize(self, chunks, title: str) -> DocumentSummary:
        try:
            return await self.summarizer.summarize(chunks, title)
        except Exception as e:
            logger.error(f"Summarizer failed for '{title}', continuing without summary: {e}", exc_info=True)
            return DocumentSummary()

    async def process_document(self, uploaded_document_id: str, replace_slug: Optional[str] = None) -> Dict[str, Any]:
        """Process one uploaded document end to end.

        An upload that already produced a document is re-processed in replace
        mode: the linked slug is kept and its chunks are swapped for the new
        ones in one transaction.

        Args:
            uploaded_document_id: ID of the UploadedDocument row
            replace_slug: Slug of an existing document to replace

        Returns:
            {"success", "documentSlug", "stats": {"pages", "chunks", "processingTimeMs"}}
        """
        started_at = time.monotonic()
        upload = await self.tracker.get(uploaded_document_id)

        # Snapshot fields before any rollback can expire the instance
        title = upload.title
        user_id = upload.user_id
        owner_id = upload.owner_id
        file_path = upload.file_path
        file_size = upload.file_size
        mime_type = upload.mime_type
        upload_metadata = dict(upload.upload_metadata or {})
        uploaded_at = upload.created_at.isoformat() if upload.created_at else None
        replace_slug = replace_slug or upload.document_slug

        if upload.status in (UploadStatus.READY.value, UploadStatus.ERROR.value):
            await self.tracker.requeue(uploaded_document_id)

        plog = ProcessingLogger(self.db, uploaded_document_id, self.processing_method)
        await self.tracker.mark_processing(uploaded_document_id, self.processing_method)
        logger.info(f"Processing upload {uploaded_document_id} ('{title}'), replace={replace_slug}")

        stage = ProcessingStage.DOWNLOAD.value
        try:
            await plog.started(ProcessingStage.DOWNLOAD, "Downloading document", {"file_path": file_path})
            source = await self._load_source(file_path, upload_metadata)
            await self._stage_completed(
                plog, uploaded_document_id, ProcessingStage.DOWNLOAD, "Document downloaded", {"size": len(source)}
            )

            stage = ProcessingStage.EXTRACT.value
            await plog.started(ProcessingStage.EXTRACT, "Extracting text")
            extracted = await asyncio.to_thread(extract_text, source, self._document_kind(file_path, mime_type))
            await self._stage_completed(
                plog,
                uploaded_document_id,
                ProcessingStage.EXTRACT,
                f"Extracted {len(extracted.text)} characters from {extracted.pages} pages",
                {"pages": extracted.pages, "characters": len(extracted.text)},
            )

            stage = ProcessingStage.CHUNK.value
            await plog.started(ProcessingStage.CHUNK, "Chunking text")
            chunks = self.chunker.chunk_text(extracted.text, extracted.pages)
            if not chunks:
                raise ProcessingError("Document produced no chunks", stage=stage)
            await self._stage_completed(
                plog,
                uploaded_document_id,
                ProcessingStage.CHUNK,
                f"Created {len(chunks)} chunks",
                {
                    "chunks": len(chunks),
                    "chunk_size": self.chunker.chunk_size,
                    "chunk_overlap": self.chunker.chunk_overlap,
                },
            )

            stage = ProcessingStage.EMBED.value
            embedder = ChunkEmbedder(self.embedding_provider)
            await plog.started(
                ProcessingStage.EMBED,
                f"Generating embeddings and summary for {len(chunks)} chunks",
                {"embedding_type": self.embedding_provider.embedding_type},
            )
            summary, embedded = await asyncio.gather(
                self._summarize(chunks, title),
                embedder.embed_chunks(chunks),
            )
            embedded_count = sum(1 for item in embedded if item.embedding is not None)
            if embedded_count == 0:
                raise EmbeddingError("Every embedding batch failed", context={"chunks": len(chunks)})
            await self._stage_completed(
                plog,
                uploaded_document_id,
                ProcessingStage.EMBED,
                f"Embedded {embedded_count}/{len(chunks)} chunks",
                {
                    "embedded": embedded_count,
                    "failed": len(chunks) - embedded_count,
                    "has_abstract": summary.abstract is not None,
                    "keywords": len(summary.keywords),
                    "summary_method": summary.method,
                },
            )

            stage = ProcessingStage.STORE.value
            await plog.started(ProcessingStage.STORE, "Storing chunks")
            metadata = IngestionMetadata(
                keywords=summary.keywords,
                user_document_id=uploaded_document_id,
                user_id=user_id,
                uploaded_at=uploaded_at,
                file_size=file_size,
                has_ai_abstract=summary.abstract is not None,
                character_count=len(extracted.text),
                page_count=extracted.pages,
            ).model_dump()
            intro = build_intro_message(title, summary.abstract)
            embedding_type = self.embedding_provider.embedding_type

            existing = await self.documents.get_by_slug(replace_slug, active_only=False) if replace_slug else None
            if existing:
                previous_type = existing.embedding_type
                document = await self.documents.update_document(
                    existing,
                    title=title,
                    intro_message=intro,
                    doc_metadata=metadata,
                    embedding_type=embedding_type,
                    commit=False,
                )
                if previous_type != embedding_type:
                    await self.chunk_store.delete_chunks(document.slug, previous_type)
            else:
                document = await self.documents.create_document(
                    slug=generate_document_slug(title),
                    title=title,
                    owner_id=owner_id,
                    intro_message=intro,
                    metadata=metadata,
                    embedding_type=embedding_type,
                    commit=False,
                )
            plog.document_slug = document.slug

            # The document row commits together with its chunks
            writer = ChunkStoreWriter(self.chunk_store)
            stored = await writer.store_chunks(
                document.slug,
                embedded,
                embedding_type,
                document_id=document.id,
                replace=existing is not None,
            )
            await self._stage_completed(
                plog, uploaded_document_id, ProcessingStage.STORE, f"Stored {stored} chunks", {"stored": stored}
            )

            stage = ProcessingStage.COMPLETE.value
            await self.tracker.mark_ready(uploaded_document_id, document.slug)
            elapsed_ms = int((time.monotonic() - started_at) * 1000)
            stats = {"pages": extracted.pages, "chunks": stored, "processingTimeMs": elapsed_ms}
            await plog.completed(ProcessingStage.COMPLETE, "Document ready", stats)

            logger.info(f"Upload {uploaded_document_id} ready as {document.slug}: {stats}")
            return {"success": True, "documentSlug": document.slug, "stats": stats}

        except Exception as e:
            failed_stage = e.stage if isinstance(e, ProcessingError) else stage
            logger.error(f"Processing failed for upload {uploaded_document_id} at {failed_stage}: {e}")
            try:
                await self.db.rollback()
                await plog.failed(failed_stage, e)
                await self.tracker.mark_error(uploaded_document_id, str(e))
            except Exception as status_error:
                logger.error(
                    f"Could not record failure for upload {uploaded_document_id}: {status_error}",
                    exc_info=True,
                )
            raise

    async def retrain_document(self, document_slug: str, uploaded_document_id: str) -> Dict[str, Any]:
        """Re-run ingestion for an upload, replacing the chunks of ``document_slug``."""
        logger.info(f"Retraining {document_slug} from upload {uploaded_document_id}")
        return await self.process_document(uploaded_document_id, replace_slug=document_slug)
