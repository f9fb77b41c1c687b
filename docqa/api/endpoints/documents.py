"""Document upload and ingestion status endpoints."""

import logging
import os
from typing import Any, Dict, List, Optional
import uuid

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from docqa.api.deps import get_db, get_optional_user_id
from docqa.core.config import settings
from docqa.core.constants import TEXT_UPLOAD_PATH
from docqa.core.errors import DocumentNotFoundError
from docqa.db.models.uploaded_document import UploadedDocument
from docqa.schemas.document import UploadStatusResponse
from docqa.services.documents import DocumentService
from docqa.services.ingestion import ProcessingStatusTracker, is_stuck
from docqa.services.ingestion.file_storage import SUPPORTED_EXTENSIONS, get_storage_backend
from docqa.services.ingestion.status import get_processing_logs, progress_from_logs
from docqa.worker.tasks.document_tasks import process_document, retrain_document

logger = logging.getLogger(__name__)
router = APIRouter()


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


async def _get_upload(db: AsyncSession, upload_id: str) -> UploadedDocument:
    try:
        return await ProcessingStatusTracker(db).get(upload_id)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail=f"Upload {upload_id} not found")


@router.post("/upload")
async def upload_document(
    title: str = Form(...),
    file: Optional[UploadFile] = File(None),
    text: Optional[str] = Form(None),
    owner_id: Optional[str] = Form(None),
    user_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Upload a PDF or plain text document and queue it for processing.

    Args:
        title: Document title
        file: PDF or text file
        text: Raw text, used when no file is sent
        owner_id: Owner the resulting document belongs to; the caller must be a member

    Returns:
        The pending upload and the queued task id
    """
    user_id = _require_user(user_id)
    if file is None and not (text and text.strip()):
        raise HTTPException(status_code=400, detail="Either a file or text content is required")

    if owner_id:
        memberships = await DocumentService(db).get_memberships(user_id)
        if owner_id not in {membership.owner_id for membership in memberships}:
            logger.warning(f"User {user_id} tried to upload into owner {owner_id} without membership")
            raise HTTPException(status_code=403, detail="Not a member of this owner")

    try:
        upload_metadata: Dict[str, Any] = {}
        if file is not None:
            extension = os.path.splitext(file.filename or "")[1].lower()
            if extension not in SUPPORTED_EXTENSIONS:
                raise HTTPException(
                    status_code=415,
                    detail=f"Unsupported file type: {extension}. Supported types: {', '.join(SUPPORTED_EXTENSIONS)}",
                )

            content = await file.read()
            if len(content) > settings.MAX_UPLOAD_BYTES:
                raise HTTPException(
                    status_code=413,
                    detail=f"File too large: {len(content)} bytes (max: {settings.MAX_UPLOAD_BYTES} bytes)",
                )

            storage_path = f"{user_id}/{uuid.uuid4().hex}{extension}"
            file_path = await get_storage_backend().upload(storage_path, content, SUPPORTED_EXTENSIONS[extension])
            file_size = len(content)
            mime_type = SUPPORTED_EXTENSIONS[extension]
            upload_metadata["original_filename"] = file.filename
        else:
            file_path = TEXT_UPLOAD_PATH
            file_size = len(text.encode("utf-8"))
            mime_type = "text/plain"
            upload_metadata["text_content"] = text

        upload = UploadedDocument(
            user_id=user_id,
            owner_id=owner_id,
            title=title.strip(),
            file_path=file_path,
            file_size=file_size,
            mime_type=mime_type,
            upload_metadata=upload_metadata,
        )
        db.add(upload)
        await db.commit()
        logger.info(f"Upload {upload.id} ('{upload.title}') stored at {file_path}")

        task = process_document.delay(upload.id)
        return {
            "status": "accepted",
            "message": "Document uploaded and queued for processing",
            "upload": upload.to_dict(),
            "task_id": task.id,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error processing upload: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Document upload failed: {str(e)}")


@router.get("/stuck")
async def list_stuck_uploads(
    threshold_minutes: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
) -> List[Dict[str, Any]]:
    """Uploads stuck in processing longer than the threshold."""
    stuck = await ProcessingStatusTracker(db).find_stuck(threshold_minutes)
    return [upload.to_dict() for upload in stuck]


@router.post("/{upload_id}/process")
async def queue_processing(
    upload_id: str,
    user_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Queue (or re-queue) processing of an upload."""
    user_id = _require_user(user_id)
    upload = await _get_upload(db, upload_id)
    if upload.user_id != user_id:
        raise HTTPException(status_code=403, detail="Not allowed to process this upload")

    task = process_document.delay(upload.id)
    logger.info(f"Queued processing of upload {upload.id} (task {task.id})")
    return {"status": "accepted", "upload_id": upload.id, "task_id": task.id}


@router.post("/{slug}/retrain")
async def queue_retrain(
    slug: str,
    uploaded_document_id: str = Form(...),
    user_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Queue a retrain that replaces the chunks of ``slug`` from a new upload."""
    user_id = _require_user(user_id)
    document = await DocumentService(db).get_by_slug(slug, active_only=False)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document {slug} not found")

    upload = await _get_upload(db, uploaded_document_id)
    if upload.user_id != user_id:
        raise HTTPException(status_code=403, detail="Not allowed to use this upload")

    task = retrain_document.delay(slug, upload.id)
    logger.info(f"Queued retrain of {slug} from upload {upload.id} (task {task.id})")
    return {"status": "accepted", "document_slug": slug, "upload_id": upload.id, "task_id": task.id}


@router.get("/{upload_id}/status", response_model=UploadStatusResponse)
async def get_upload_status(upload_id: str, db: AsyncSession = Depends(get_db)) -> UploadStatusResponse:
    """Status, progress and stuck flag of an upload, as polled by the UI."""
    upload = await _get_upload(db, upload_id)
    progress = progress_from_logs(await get_processing_logs(db, upload_id))
    return UploadStatusResponse(
        id=upload.id,
        status=upload.status,
        error_message=upload.error_message,
        processing_method=upload.processing_method,
        document_slug=upload.document_slug,
        progress=progress["progress"],
        stage=progress["stage"],
        is_stuck=is_stuck(upload),
        updated_at=upload.updated_at.isoformat() if upload.updated_at else None,
    )


@router.get("/{upload_id}/logs")
async def get_upload_logs(
    upload_id: str,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> List[Dict[str, Any]]:
    """Processing log entries of an upload, oldest first."""
    await _get_upload(db, upload_id)
    entries = await get_processing_logs(db, upload_id, limit=limit)
    return [entry.to_dict() for entry in entries]
