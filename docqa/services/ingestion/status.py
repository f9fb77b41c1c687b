"""Upload status state machine and the stage-tagged processing log."""

from datetime import datetime, timedelta, UTC
import logging
import traceback
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from docqa.core.config import settings
from docqa.core.constants import STAGE_PROGRESS, ProcessingStage, StageStatus, UploadStatus
from docqa.core.errors import DocumentNotFoundError, InvalidStatusTransition
from docqa.db.models.processing_log import ProcessingLogEntry
from docqa.db.models.uploaded_document import UploadedDocument

logger = logging.getLogger(__name__)

# Forward transitions; writing the current status again is always allowed
ALLOWED_TRANSITIONS = {
    UploadStatus.PENDING.value: {UploadStatus.PROCESSING.value, UploadStatus.ERROR.value},
    UploadStatus.PROCESSING.value: {UploadStatus.READY.value, UploadStatus.ERROR.value},
    UploadStatus.READY.value: set(),
    UploadStatus.ERROR.value: set(),
}


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def is_stuck(upload: UploadedDocument, threshold_minutes: Optional[int] = None, now: Optional[datetime] = None) -> bool:
    """True when the upload is processing and has not been touched within the threshold."""
    if upload.status != UploadStatus.PROCESSING.value or upload.updated_at is None:
        return False
    threshold = timedelta(minutes=threshold_minutes or settings.STUCK_THRESHOLD_MINUTES)
    now = now or datetime.now(UTC)
    return now - _as_utc(upload.updated_at) > threshold


class ProcessingStatusTracker:
    """Moves uploads through pending -> processing -> ready/error.

    Every write commits immediately and touches ``updated_at``, which is the
    only signal used for stuck detection.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get(self, upload_id: str) -> UploadedDocument:
        result = await self.db.execute(select(UploadedDocument).where(UploadedDocument.id == upload_id))
        upload = result.scalars().first()
        if upload is None:
            raise DocumentNotFoundError(f"Uploaded document {upload_id} not found", context={"id": upload_id})
        return upload

    async def _write(self, upload_id: str, status: str, **fields: Any) -> UploadedDocument:
        upload = await self.get(upload_id)
        current = upload.status
        if status != current and status not in ALLOWED_TRANSITIONS.get(current, set()):
            raise InvalidStatusTransition(current, status)

        upload.status = status
        for key, value in fields.items():
            setattr(upload, key, value)
        upload.updated_at = datetime.now(UTC)
        try:
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error updating upload {upload_id} to {status}: {e}")
            raise

        if status != current:
            logger.info(f"Upload {upload_id}: {current} -> {status}")
        return upload

    async def mark_processing(self, upload_id: str, method: Optional[str] = None) -> UploadedDocument:
        return await self._write(
            upload_id,
            UploadStatus.PROCESSING.value,
            processing_method=method or settings.PROCESSING_METHOD,
            error_message=None,
        )

    async def mark_ready(self, upload_id: str, document_slug: str) -> UploadedDocument:
        return await self._write(upload_id, UploadStatus.READY.value, document_slug=document_slug, error_message=None)

    async def mark_error(self, upload_id: str, message: str) -> UploadedDocument:
        return await self._write(upload_id, UploadStatus.ERROR.value, error_message=message)

    async def touch(self, upload_id: str) -> UploadedDocument:
        """Refresh ``updated_at`` without changing status, as a heartbeat."""
        upload = await self.get(upload_id)
        return await self._write(upload_id, upload.status)

    async def requeue(self, upload_id: str) -> UploadedDocument:
        """Explicitly send an upload back to pending for a fresh processing cycle."""
        upload = await self.get(upload_id)
        previous = upload.status
        upload.status = UploadStatus.PENDING.value
        upload.error_message = None
        upload.updated_at = datetime.now(UTC)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info(f"Upload {upload_id} re-queued from {previous}")
        return upload

    async def find_stuck(self, threshold_minutes: Optional[int] = None) -> List[UploadedDocument]:
        """Uploads in processing whose last update is older than the threshold."""
        threshold = threshold_minutes or settings.STUCK_THRESHOLD_MINUTES
        cutoff = datetime.now(UTC) - timedelta(minutes=threshold)
        result = await self.db.execute(
            select(UploadedDocument)
            .where(UploadedDocument.status == UploadStatus.PROCESSING.value)
            .where(UploadedDocument.updated_at < cutoff)
            .order_by(UploadedDocument.updated_at)
        )
        return list(result.scalars().all())


class ProcessingLogger:
    """Appends ProcessingLogEntry rows for one upload and mirrors them to the logger."""

    def __init__(
        self,
        db_session: AsyncSession,
        user_document_id: str,
        processing_method: Optional[str] = None,
    ):
        self.db = db_session
        self.user_document_id = user_document_id
        self.processing_method = processing_method or settings.PROCESSING_METHOD
        self.document_slug: Optional[str] = None

    async def log(
        self,
        stage: ProcessingStage,
        status: StageStatus,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ProcessingLogEntry:
        entry = ProcessingLogEntry(
            user_document_id=self.user_document_id,
            document_slug=self.document_slug,
            stage=stage.value,
            status=status.value,
            message=message,
            processing_method=self.processing_method,
            log_metadata=metadata or {},
        )
        try:
            self.db.add(entry)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        level = logging.ERROR if status == StageStatus.FAILED else logging.INFO
        logger.log(level, f"[{self.user_document_id}] {stage.value}/{status.value}: {message}")
        return entry

    async def started(self, stage: ProcessingStage, message: str, metadata: Optional[Dict[str, Any]] = None):
        return await self.log(stage, StageStatus.STARTED, message, metadata)

    async def progress(self, stage: ProcessingStage, message: str, metadata: Optional[Dict[str, Any]] = None):
        return await self.log(stage, StageStatus.PROGRESS, message, metadata)

    async def completed(self, stage: ProcessingStage, message: str, metadata: Optional[Dict[str, Any]] = None):
        return await self.log(stage, StageStatus.COMPLETED, message, metadata)

    async def failed(self, stage: str, error: BaseException, metadata: Optional[Dict[str, Any]] = None):
        """Record a failure under the error stage, with the failing stage and stack."""
        details = {
            "failed_stage": stage,
            "error": str(error),
            "error_type": type(error).__name__,
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        }
        details.update(metadata or {})
        return await self.log(ProcessingStage.ERROR, StageStatus.FAILED, f"Processing failed: {error}", details)


async def get_processing_logs(db: AsyncSession, user_document_id: str, limit: int = 100) -> List[ProcessingLogEntry]:
    """Most recent log entries for an upload, oldest first."""
    result = await db.execute(
        select(ProcessingLogEntry)
        .where(ProcessingLogEntry.user_document_id == user_document_id)
        .order_by(desc(ProcessingLogEntry.created_at), desc(ProcessingLogEntry.id))
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


def progress_from_logs(entries: List[ProcessingLogEntry]) -> Dict[str, Any]:
    """UI progress percentage and current stage from the latest log entry."""
    if not entries:
        return {"progress": 0, "stage": None}
    latest = entries[-1]
    if latest.stage == ProcessingStage.ERROR.value:
        return {"progress": 0, "stage": latest.stage}
    return {"progress": STAGE_PROGRESS.get(latest.stage, 0), "stage": latest.stage}
