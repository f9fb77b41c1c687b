"""Tests for the upload status tracker and processing log."""

from datetime import datetime, timedelta, UTC

import pytest
import pytest_asyncio

from docqa.core.constants import ProcessingStage, UploadStatus
from docqa.core.errors import DocumentNotFoundError, InvalidStatusTransition
from docqa.db.models.uploaded_document import UploadedDocument
from docqa.services.ingestion.status import (
    ProcessingLogger,
    ProcessingStatusTracker,
    get_processing_logs,
    is_stuck,
    progress_from_logs,
)


@pytest_asyncio.fixture
async def upload(db_session):
    upload = UploadedDocument(user_id="user-1", title="Renal Guide", file_path="user-1/renal.pdf")
    db_session.add(upload)
    await db_session.commit()
    return upload


@pytest.mark.asyncio
async def test_happy_path_transitions(db_session, upload):
    tracker = ProcessingStatusTracker(db_session)

    processing = await tracker.mark_processing(upload.id, method="python")
    assert processing.status == UploadStatus.PROCESSING.value
    assert processing.processing_method == "python"

    ready = await tracker.mark_ready(upload.id, "renal-guide")
    assert ready.status == UploadStatus.READY.value
    assert ready.document_slug == "renal-guide"
    assert ready.error_message is None


@pytest.mark.asyncio
async def test_terminal_status_cannot_go_back(db_session, upload):
    tracker = ProcessingStatusTracker(db_session)
    await tracker.mark_processing(upload.id)
    await tracker.mark_error(upload.id, "extraction failed")

    with pytest.raises(InvalidStatusTransition):
        await tracker.mark_processing(upload.id)

    assert (await tracker.get(upload.id)).error_message == "extraction failed"


@pytest.mark.asyncio
async def test_pending_cannot_jump_to_ready(db_session, upload):
    with pytest.raises(InvalidStatusTransition):
        await ProcessingStatusTracker(db_session).mark_ready(upload.id, "renal-guide")


@pytest.mark.asyncio
async def test_requeue_allows_a_new_cycle(db_session, upload):
    tracker = ProcessingStatusTracker(db_session)
    await tracker.mark_processing(upload.id)
    await tracker.mark_error(upload.id, "boom")

    requeued = await tracker.requeue(upload.id)
    assert requeued.status == UploadStatus.PENDING.value
    assert requeued.error_message is None

    assert (await tracker.mark_processing(upload.id)).status == UploadStatus.PROCESSING.value


@pytest.mark.asyncio
async def test_get_missing_upload(db_session):
    with pytest.raises(DocumentNotFoundError):
        await ProcessingStatusTracker(db_session).get("missing")


@pytest.mark.asyncio
async def test_find_stuck(db_session, upload):
    tracker = ProcessingStatusTracker(db_session)
    await tracker.mark_processing(upload.id)
    assert await tracker.find_stuck(10) == []

    upload.updated_at = datetime.now(UTC) - timedelta(minutes=30)
    await db_session.commit()

    stuck = await tracker.find_stuck(10)
    assert [u.id for u in stuck] == [upload.id]

    await tracker.touch(upload.id)
    assert await tracker.find_stuck(10) == []


def test_is_stuck():
    now = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
    upload = UploadedDocument(status=UploadStatus.PROCESSING.value, updated_at=now - timedelta(minutes=11))

    assert is_stuck(upload, threshold_minutes=10, now=now)
    assert not is_stuck(upload, threshold_minutes=15, now=now)

    upload.status = UploadStatus.READY.value
    assert not is_stuck(upload, threshold_minutes=10, now=now)

    naive = UploadedDocument(status=UploadStatus.PROCESSING.value, updated_at=datetime(2026, 1, 1, 11, 0))
    assert is_stuck(naive, threshold_minutes=10, now=now)


@pytest.mark.asyncio
async def test_processing_log_and_progress(db_session, upload):
    processing_log = ProcessingLogger(db_session, upload.id, processing_method="python")

    await processing_log.started(ProcessingStage.DOWNLOAD, "Downloading")
    await processing_log.completed(ProcessingStage.EXTRACT, "Extracted 3 pages", {"pages": 3})

    entries = await get_processing_logs(db_session, upload.id)
    assert [e.stage for e in entries] == ["download", "extract"]
    assert entries[1].log_metadata == {"pages": 3}
    assert progress_from_logs(entries) == {"progress": 25, "stage": "extract"}

    await processing_log.failed("embed", RuntimeError("quota exceeded"))
    entries = await get_processing_logs(db_session, upload.id)
    assert entries[-1].stage == ProcessingStage.ERROR.value
    assert entries[-1].status == "failed"
    assert entries[-1].log_metadata["failed_stage"] == "embed"
    assert entries[-1].log_metadata["error_type"] == "RuntimeError"
    assert progress_from_logs(entries) == {"progress": 0, "stage": "error"}


def test_progress_without_logs():
    assert progress_from_logs([]) == {"progress": 0, "stage": None}
