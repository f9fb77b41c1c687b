"""Tests for file storage, document metadata and document helpers."""

from datetime import datetime, UTC

import httpx
import pytest

from docqa.core.errors import DownloadError
from docqa.schemas.document import AdminMetadata, IngestionMetadata, parse_document_metadata
from docqa.services.documents.document_service import (
    DocumentService,
    build_intro_message,
    generate_document_slug,
    slugify,
)
from docqa.services.ingestion.file_storage import LocalFileStorage, SupabaseStorage


@pytest.mark.asyncio
async def test_local_storage(tmp_path):
    storage = LocalFileStorage(str(tmp_path))

    await storage.upload("user-1/report.pdf", b"%PDF-1.7")
    assert await storage.download("user-1/report.pdf") == b"%PDF-1.7"

    await storage.remove("user-1/report.pdf")
    with pytest.raises(DownloadError) as exc_info:
        await storage.download("user-1/report.pdf")
    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_local_storage_rejects_escaping_paths(tmp_path):
    storage = LocalFileStorage(str(tmp_path / "root"))

    with pytest.raises(ValueError):
        await storage.upload("../outside.txt", b"x")


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code, retryable", [(404, False), (503, True)])
async def test_supabase_download_errors(status_code, retryable):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/storage/v1/object/user-documents/user-1/report.pdf"
        assert request.headers["apikey"] == "service-key"
        return httpx.Response(status_code)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        storage = SupabaseStorage("https://project.supabase.co", "service-key", "user-documents", client=client)

        with pytest.raises(DownloadError) as exc_info:
            await storage.download("user-1/report.pdf")

    assert exc_info.value.retryable is retryable
    assert exc_info.value.context["status"] == status_code


def test_parse_document_metadata():
    ingested = parse_document_metadata({
        "source": "ingestion",
        "user_document_id": "upload-1",
        "user_id": "user-1",
        "keywords": [{"term": "renal", "weight": 0.8}],
    })
    curated = parse_document_metadata({"notes": "Reviewed", "legacy_id": 42})

    assert isinstance(ingested, IngestionMetadata)
    assert ingested.keywords[0].term == "renal"
    assert isinstance(curated, AdminMetadata)
    assert curated.notes == "Reviewed"
    assert curated.extra == {"legacy_id": 42}
    assert parse_document_metadata(None) is None


def test_slug_helpers():
    now = datetime(2026, 1, 1, tzinfo=UTC)

    assert slugify("  Renal Dosing: 2nd Edition! ") == "renal-dosing-2nd-edition"
    assert slugify("???") == "document"
    assert generate_document_slug("Renal Guide", now) == f"user-renal-guide-{int(now.timestamp() * 1000)}"


def test_build_intro_message():
    assert build_intro_message("Renal Guide", None) == "Ask questions about <strong>Renal Guide</strong>."
    assert "Metformin dosing overview." in build_intro_message("Renal Guide", "Metformin dosing overview.")


@pytest.mark.asyncio
async def test_document_service_create_and_lookup(db_session):
    service = DocumentService(db_session)

    created = await service.create_document(
        slug="renal-guide",
        title="Renal Guide",
        owner_id=None,
        intro_message=None,
        metadata={"source": "admin"},
    )
    await service.update_document(created, active=False, slug="ignored")

    assert await service.get_by_slug("renal-guide") is None
    inactive = await service.get_by_slug("renal-guide", active_only=False)
    assert inactive.slug == "renal-guide"
    assert await service.get_by_slugs(["renal-guide", "missing"], active_only=False) == {"renal-guide": inactive}
