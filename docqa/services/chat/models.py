"""Chat model names and the per-owner / per-document forced model override."""

from dataclasses import dataclass
import logging
from typing import Optional, Sequence

from docqa.core.config import settings
from docqa.core.constants import CHAT_MODELS
from docqa.db.models.document import Document
from docqa.services.retrieval.retriever import OwnerInfo

logger = logging.getLogger(__name__)

REASONING_MODEL = "grok-reasoning"
OVERRIDABLE_MODELS = {"grok", REASONING_MODEL}


def normalize_model(model: Optional[str]) -> str:
    """Known short model name, falling back to the default for unknown input."""
    if model in CHAT_MODELS:
        return model
    if model:
        logger.warning(f"Unknown model '{model}', using {settings.DEFAULT_CHAT_MODEL}")
    return settings.DEFAULT_CHAT_MODEL


def provider_model_name(model: str) -> str:
    return CHAT_MODELS.get(model, CHAT_MODELS[settings.DEFAULT_CHAT_MODEL])


@dataclass
class ModelSelection:
    effective_model: str
    original_model: str
    override_source: Optional[str] = None
    override_reason: Optional[str] = None

    @property
    def override_applied(self) -> bool:
        return self.effective_model != self.original_model


def apply_model_override(
    requested: str,
    documents: Sequence[Document],
    owner_info: Optional[OwnerInfo],
) -> ModelSelection:
    """Apply forced model settings to a grok request.

    Only grok requests are overridden. A single document's own forced model
    beats its owner's. Across several documents, conflicting document
    overrides or any reasoning override resolve to the reasoning model,
    agreeing overrides apply as-is, and with no document overrides the common
    owner's override applies.
    """
    selection = ModelSelection(effective_model=requested, original_model=requested)
    if requested not in OVERRIDABLE_MODELS:
        return selection

    owner_forced = owner_info.forced_model if owner_info and not owner_info.is_mixed else None

    if len(documents) == 1:
        document_forced = documents[0].forced_model
        if document_forced:
            selection.effective_model = document_forced
            selection.override_source = "document"
            selection.override_reason = f"Document-level override: {documents[0].slug}"
        elif owner_forced:
            selection.effective_model = owner_forced
            selection.override_source = "owner"
            selection.override_reason = f"Owner-level override: {owner_info.owner_name}"
    else:
        overrides = [doc.forced_model for doc in documents if doc.forced_model]
        if overrides:
            if REASONING_MODEL in overrides or len(set(overrides)) > 1:
                selection.effective_model = REASONING_MODEL
                selection.override_source = "multi-document-reasoning"
                selection.override_reason = f"Multi-document override: {', '.join(overrides)}"
            else:
                selection.effective_model = overrides[0]
                selection.override_source = "multi-document-consensus"
                selection.override_reason = f"Multi-document override: all documents agree ({overrides[0]})"
        elif owner_forced:
            selection.effective_model = owner_forced
            selection.override_source = "owner"
            selection.override_reason = f"Owner-level override: {owner_info.owner_name}"

    if selection.override_applied:
        logger.info(
            f"Forced model override: requested {requested}, using {selection.effective_model} "
            f"({selection.override_reason})"
        )
    return selection
