"""Celery tasks for document ingestion."""

import asyncio
import logging
from typing import Any, Coroutine, Dict, Optional

from docqa.core.errors import ProcessingError
from docqa.db.session import get_async_session
from docqa.services.ingestion import IngestionService, ProcessingStatusTracker
from docqa.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            raise RuntimeError("event loop is closed")
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


async def _process(uploaded_document_id: str, replace_slug: Optional[str] = None) -> Dict[str, Any]:
    async with get_async_session() as db:
        service = IngestionService(db)
        if replace_slug:
            return await service.retrain_document(replace_slug, uploaded_document_id)
        return await service.process_document(uploaded_document_id)


async def _find_stuck(threshold_minutes: Optional[int]) -> Dict[str, Any]:
    async with get_async_session() as db:
        stuck = await ProcessingStatusTracker(db).find_stuck(threshold_minutes)
        return {
            "count": len(stuck),
            "documents": [
                {"id": upload.id, "title": upload.title, "updated_at": upload.updated_at.isoformat()}
                for upload in stuck
            ],
        }


def _failure(uploaded_document_id: str, error: ProcessingError) -> Dict[str, Any]:
    logger.error(f"Processing failed for upload {uploaded_document_id} at {error.stage}: {error.message}")
    return {"success": False, "uploadedDocumentId": uploaded_document_id, "error": error.to_dict()}


@celery_app.task(name="process_document")
def process_document(uploaded_document_id: str) -> dict:
    """Run the ingestion pipeline for an uploaded document.

    Args:
        uploaded_document_id: ID of the UploadedDocument row

    Returns:
        {"success", "documentSlug", "stats"} or a failure summary
    """
    logger.info(f"Starting document processing task for upload {uploaded_document_id}")
    try:
        result = _run(_process(uploaded_document_id))
    except ProcessingError as e:
        return _failure(uploaded_document_id, e)

    logger.info(f"Completed document processing for upload {uploaded_document_id}: {result['documentSlug']}")
    return result


@celery_app.task(name="retrain_document")
def retrain_document(document_slug: str, uploaded_document_id: str) -> dict:
    """Re-ingest a document from a new upload, replacing its chunks in place."""
    logger.info(f"Starting retrain task for {document_slug} from upload {uploaded_document_id}")
    try:
        result = _run(_process(uploaded_document_id, replace_slug=document_slug))
    except ProcessingError as e:
        return _failure(uploaded_document_id, e)

    logger.info(f"Completed retrain of {document_slug}")
    return result


@celery_app.task(name="report_stuck_documents")
def report_stuck_documents(threshold_minutes: Optional[int] = None) -> dict:
    """Log uploads that look stuck in processing. Nothing is changed."""
    report = _run(_find_stuck(threshold_minutes))
    for item in report["documents"]:
        logger.warning(f"Upload {item['id']} ('{item['title']}') stuck in processing since {item['updated_at']}")
    if not report["count"]:
        logger.info("No stuck uploads")
    return report
