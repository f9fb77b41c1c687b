"""Pydantic schemas for document metadata and upload status."""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class Keyword(BaseModel):
    """A weighted keyword for word-cloud display."""

    term: str
    weight: float = Field(..., ge=0.1, le=1.0)


class IngestionMetadata(BaseModel):
    """Metadata written by the ingestion pipeline."""

    source: Literal["ingestion"] = "ingestion"
    keywords: List[Keyword] = Field(default_factory=list)
    user_document_id: str
    user_id: str
    uploaded_at: Optional[str] = None
    file_size: Optional[int] = None
    has_ai_abstract: bool = False
    character_count: int = 0
    page_count: int = 0


class AdminMetadata(BaseModel):
    """Metadata edited by administrators for curated documents."""

    source: Literal["admin"] = "admin"
    keywords: List[Keyword] = Field(default_factory=list)
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict, description="Fields from unknown producers")


DocumentMetadata = Annotated[Union[IngestionMetadata, AdminMetadata], Field(discriminator="source")]

document_metadata_adapter = TypeAdapter(DocumentMetadata)


def parse_document_metadata(raw: Optional[Dict[str, Any]]) -> Optional[Union[IngestionMetadata, AdminMetadata]]:
    """Parse a stored metadata bag, treating untagged bags as admin metadata."""
    if not raw:
        return None
    if "source" not in raw:
        known = {k: v for k, v in raw.items() if k in AdminMetadata.model_fields}
        extra = {k: v for k, v in raw.items() if k not in AdminMetadata.model_fields}
        return AdminMetadata(**known, extra=extra)
    return document_metadata_adapter.validate_python(raw)


class UploadStatusResponse(BaseModel):
    """Status of an upload job as polled by the UI."""

    id: str
    status: str
    error_message: Optional[str] = None
    processing_method: Optional[str] = None
    document_slug: Optional[str] = None
    progress: int = 0
    stage: Optional[str] = None
    is_stuck: bool = False
    updated_at: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
