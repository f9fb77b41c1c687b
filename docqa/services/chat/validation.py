"""Cheap request checks that run before any retrieval work."""

import logging
import re
from typing import List, Optional, Sequence, Union
import uuid

from docqa.core.config import settings
from docqa.core.errors import TooManyDocuments, ValidationFailed

logger = logging.getLogger(__name__)

SESSION_ID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
DOCUMENT_SEPARATOR_RE = re.compile(r"[\s+]+")


def validate_session_id(session_id: Optional[str]) -> str:
    """Return the client session id when it is UUID shaped, otherwise a fresh one."""
    if session_id and SESSION_ID_RE.match(session_id):
        return session_id
    return str(uuid.uuid4())


def validate_message(message: Optional[str], max_length: Optional[int] = None) -> str:
    """Reject empty or oversized messages.

    Raises:
        ValidationFailed: Message missing or longer than the limit
    """
    max_length = max_length or settings.MAX_MESSAGE_LENGTH
    if not message:
        raise ValidationFailed("Message is required")
    if len(message) > max_length:
        raise ValidationFailed(
            "Message too long",
            f"Message exceeds maximum length of {max_length} characters. Please shorten your message.",
        )
    return message


def parse_document_param(doc: Union[str, Sequence[str], None]) -> List[str]:
    """Document slugs from a ``+``/whitespace separated string or a list, order kept, duplicates dropped."""
    if doc is None:
        return []
    parts = DOCUMENT_SEPARATOR_RE.split(doc) if isinstance(doc, str) else [str(d).strip() for d in doc]
    slugs: List[str] = []
    for part in parts:
        part = part.strip()
        if part and part not in slugs:
            slugs.append(part)
    return slugs


def validate_document_count(document_slugs: Sequence[str], max_documents: Optional[int] = None) -> None:
    """Raises TooManyDocuments above the per-query fan-out limit, ValidationFailed when empty."""
    max_documents = max_documents or settings.MAX_DOCUMENTS_PER_QUERY
    if not document_slugs:
        raise ValidationFailed("Document is required", "Specify at least one document slug.")
    if len(document_slugs) > max_documents:
        raise TooManyDocuments(
            "Too Many Documents",
            f"Maximum {max_documents} documents can be searched simultaneously. "
            f"You specified {len(document_slugs)}.",
            count=len(document_slugs),
            max=max_documents,
        )
