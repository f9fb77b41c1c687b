"""Enumerations and fixed values shared across services."""

from enum import Enum


class UploadStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class ProcessingStage(str, Enum):
    DOWNLOAD = "download"
    EXTRACT = "extract"
    CHUNK = "chunk"
    EMBED = "embed"
    STORE = "store"
    COMPLETE = "complete"
    ERROR = "error"


class StageStatus(str, Enum):
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"


class AccessLevel(str, Enum):
    PUBLIC = "public"
    PASSCODE = "passcode"
    REGISTERED = "registered"
    OWNER_RESTRICTED = "owner_restricted"
    OWNER_ADMIN_ONLY = "owner_admin_only"


class EmbeddingType(str, Enum):
    OPENAI = "openai"
    LOCAL = "local"


# Sentinel file path for uploads that arrive as raw text
TEXT_UPLOAD_PATH = "text-upload"

# UI progress per stage
STAGE_PROGRESS = {
    ProcessingStage.DOWNLOAD.value: 10,
    ProcessingStage.EXTRACT.value: 25,
    ProcessingStage.CHUNK.value: 45,
    ProcessingStage.EMBED.value: 70,
    ProcessingStage.STORE.value: 90,
    ProcessingStage.COMPLETE.value: 100,
}

EMBEDDING_DIMENSIONS = {
    EmbeddingType.OPENAI.value: 1536,
    EmbeddingType.LOCAL.value: 384,
}

# Short client-facing model names to provider model ids
CHAT_MODELS = {
    "gemini": "gemini-2.5-flash",
    "grok": "grok-4-fast-non-reasoning",
    "grok-reasoning": "grok-4-fast-reasoning",
}

MIXED_OWNER_SLUG = "mixed"
MIXED_OWNER_NAME = "Multiple Owners"
