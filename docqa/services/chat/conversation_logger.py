"""Persistence of chat turns as ChatConversation rows."""

import logging
import secrets
import time
from typing import Any, Callable, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docqa.core.constants import EMBEDDING_DIMENSIONS
from docqa.db.models.chat_conversation import ChatConversation
from docqa.db.session import AsyncSessionLocal
from docqa.services.chat.turn import ChatTurn
from docqa.services.retrieval.retriever import chunk_limit_source, similarity_stats

logger = logging.getLogger(__name__)

TOP_CHUNKS_LOGGED = 10


def generate_share_token() -> str:
    return secrets.token_urlsafe(24)


def build_conversation_row(
    turn: ChatTurn,
    streaming: bool,
    country: Optional[str] = None,
) -> Dict[str, Any]:
    """Column values for a ChatConversation row.

    A banned turn never carries a share token, even though one may have
    been minted before the ban flag was applied.
    """
    top_chunks = turn.retrieved[:TOP_CHUNKS_LOGGED]
    owner = turn.owner_info
    share_token = generate_share_token()
    if turn.moderation.should_ban:
        logger.info(f"Conversation flagged ({turn.moderation.reason}), withholding share token")
        share_token = None

    return {
        "session_id": turn.session_id,
        "question": turn.message,
        "response": turn.response_text or "",
        "model": turn.model.effective_model,
        "response_time_ms": turn.timings.elapsed_ms(),
        "chunks_used": len(turn.retrieved),
        "retrieval_time_ms": turn.retrieval_time_ms,
        "document_ids": [doc.id for doc in turn.documents],
        "document_slugs": list(turn.document_slugs),
        "user_id": turn.user_id,
        "ip_address": turn.ip_address,
        "country": country,
        "share_token": share_token,
        "banned": turn.moderation.should_ban,
        "ban_reason": turn.moderation.reason,
        "error": turn.error,
        "conversation_metadata": {
            "history_length": len(turn.history),
            "is_multi_document": turn.is_multi_document,
            "chunk_similarities_top10": [c.similarity for c in top_chunks],
            "chunk_similarities_stats": similarity_stats(turn.retrieved),
            "chunk_sources_top10": [
                {
                    "slug": c.document_slug,
                    "name": turn.titles_by_slug.get(c.document_slug),
                    "similarity": c.similarity,
                }
                for c in top_chunks
            ],
            "embedding_type": turn.embedding_type,
            "embedding_dimensions": EMBEDDING_DIMENSIONS.get(turn.embedding_type),
            "owner_slug": owner.owner_slug if owner else None,
            "owner_name": owner.owner_name if owner else None,
            "chunk_limit_configured": turn.chunk_limit,
            "chunk_limit_source": chunk_limit_source(owner),
            "model_override_applied": turn.model.override_applied,
            "original_model_requested": turn.model.original_model if turn.model.override_applied else None,
            "streaming": streaming,
            "timing_breakdown": turn.timings.breakdown(),
        },
    }


def with_logging_time(metadata: Optional[Dict[str, Any]], logging_ms: int) -> Dict[str, Any]:
    """Copy of ``metadata`` with ``timing_breakdown.logging_ms`` set."""
    metadata = dict(metadata or {})
    breakdown = dict(metadata.get("timing_breakdown") or {})
    breakdown["logging_ms"] = logging_ms
    metadata["timing_breakdown"] = breakdown
    return metadata


async def count_conversations(db: AsyncSession, session_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(ChatConversation).where(ChatConversation.session_id == session_id)
    )
    return int(result.scalar_one())


class ConversationLogger:
    """Writes conversation rows in their own session.

    Failures are logged and swallowed: logging is a side effect of a chat
    turn, never part of its result. The duration of the insert itself is
    stamped into the row's timing breakdown as ``logging_ms``.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal, clock=time.perf_counter):
        self.session_factory = session_factory
        self._clock = clock

    async def log(self, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Insert ``row`` and return ``{"id", "share_token"}``, or None on failure."""
        try:
            async with self.session_factory() as db:
                conversation = ChatConversation(**row)
                db.add(conversation)
                started = self._clock()
                await db.flush()
                insert_ms = int((self._clock() - started) * 1000)
                conversation.conversation_metadata = with_logging_time(conversation.conversation_metadata, insert_ms)
                await db.commit()
                conversation_id = conversation.id
        except Exception as e:
            logger.error(f"Conversation logging failed for session {row.get('session_id')}: {e}", exc_info=True)
            return None

        share_token = None if row.get("banned") else row.get("share_token")
        return {"id": conversation_id, "share_token": share_token}
