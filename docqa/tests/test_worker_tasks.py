"""Tests for the Celery ingestion tasks."""

from unittest.mock import AsyncMock, patch

from docqa.core.errors import EmbeddingError
from docqa.worker.tasks.document_tasks import process_document, report_stuck_documents, retrain_document


@patch("docqa.worker.tasks.document_tasks._process", new_callable=AsyncMock)
def test_process_document_task(mock_process):
    mock_process.return_value = {
        "success": True,
        "documentSlug": "user-renal-guide-1760000000000",
        "stats": {"pages": 3, "chunks": 12, "processingTimeMs": 950},
    }

    result = process_document("upload-1")

    assert result["success"] is True
    mock_process.assert_awaited_once_with("upload-1")


@patch("docqa.worker.tasks.document_tasks._process", new_callable=AsyncMock)
def test_process_document_task_failure(mock_process):
    mock_process.side_effect = EmbeddingError("Every embedding batch failed", context={"chunks": 4})

    result = process_document("upload-1")

    assert result["success"] is False
    assert result["uploadedDocumentId"] == "upload-1"
    assert result["error"]["stage"] == "embed"
    assert result["error"]["retryable"] is True


@patch("docqa.worker.tasks.document_tasks._process", new_callable=AsyncMock)
def test_retrain_document_task(mock_process):
    mock_process.return_value = {"success": True, "documentSlug": "renal-guide", "stats": {}}

    result = retrain_document("renal-guide", "upload-2")

    assert result["documentSlug"] == "renal-guide"
    mock_process.assert_awaited_once_with("upload-2", replace_slug="renal-guide")


@patch("docqa.worker.tasks.document_tasks._find_stuck", new_callable=AsyncMock)
def test_report_stuck_documents(mock_find_stuck):
    mock_find_stuck.return_value = {
        "count": 1,
        "documents": [{"id": "upload-3", "title": "Renal Guide", "updated_at": "2026-01-01T12:00:00+00:00"}],
    }

    report = report_stuck_documents(10)

    assert report["count"] == 1
    mock_find_stuck.assert_awaited_once_with(10)
