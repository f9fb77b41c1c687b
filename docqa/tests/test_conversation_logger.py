"""Tests for conversation row building and persistence."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from docqa.db.models.chat_conversation import ChatConversation
from docqa.schemas.chat import HistoryMessage
from docqa.services.chat.conversation_logger import ConversationLogger, build_conversation_row, count_conversations
from docqa.services.chat.models import ModelSelection
from docqa.services.chat.moderation import ModerationResult
from docqa.services.chat.turn import ChatTurn
from docqa.services.retrieval.retriever import RetrievedChunk, resolve_owner_info

SESSION_ID = "0b7e2f5c-2b3d-4a51-9a8e-1f2d3c4b5a69"


def make_turn(documents, moderation=None, model=None) -> ChatTurn:
    turn = ChatTurn(
        session_id=SESSION_ID,
        message="What is the metformin dose?",
        history=[HistoryMessage(role="user", content="hi"), HistoryMessage(role="assistant", content="hello")],
        document_slugs=[doc.slug for doc in documents],
        documents=documents,
        user_id="user-1",
        ip_address="8.8.8.8",
        embedding_type="openai",
        owner_info=resolve_owner_info(documents),
        chunk_limit=50,
        model=model or ModelSelection(effective_model="gemini", original_model="gemini"),
        moderation=moderation or ModerationResult(False),
    )
    turn.retrieved = [
        RetrievedChunk(
            document_slug=documents[i % len(documents)].slug,
            chunk_index=i,
            content=f"chunk {i}",
            page_number=i + 1,
            similarity=round(0.9 - i * 0.05, 2),
            text_rank=0.0,
            combined_score=0.0,
            metadata={},
        )
        for i in range(12)
    ]
    turn.response_text = "Start with 500mg[1]."
    return turn


def test_build_row(documents):
    turn = make_turn(documents)

    row = build_conversation_row(turn, streaming=True, country="DE")

    assert row["session_id"] == SESSION_ID
    assert row["document_ids"] == ["doc-cardiology-manual", "doc-renal-guide"]
    assert row["chunks_used"] == 12
    assert row["country"] == "DE"
    assert row["banned"] is False
    assert row["share_token"]
    metadata = row["conversation_metadata"]
    assert metadata["streaming"] is True
    assert metadata["history_length"] == 2
    assert metadata["is_multi_document"] is True
    assert len(metadata["chunk_similarities_top10"]) == 10
    assert metadata["chunk_sources_top10"][1] == {"slug": "renal-guide", "name": "Renal Guide", "similarity": 0.85}
    assert metadata["chunk_similarities_stats"]["count"] == 12
    assert metadata["embedding_dimensions"] == 1536
    assert metadata["owner_slug"] == "acme"
    assert metadata["chunk_limit_source"] == "owner"
    assert metadata["model_override_applied"] is False
    assert metadata["original_model_requested"] is None
    assert set(metadata["timing_breakdown"]) >= {"auth_ms", "retrieval_ms", "logging_ms", "total_ms"}


def test_banned_turn_has_no_share_token(documents):
    turn = make_turn(documents, moderation=ModerationResult(True, "profanity"))

    row = build_conversation_row(turn, streaming=False)

    assert row["banned"] is True
    assert row["ban_reason"] == "profanity"
    assert row["share_token"] is None


def test_override_is_recorded(documents):
    model = ModelSelection(effective_model="grok-reasoning", original_model="grok", override_source="owner")

    metadata = build_conversation_row(make_turn(documents, model=model), streaming=False)["conversation_metadata"]

    assert metadata["model_override_applied"] is True
    assert metadata["original_model_requested"] == "grok"


@pytest.mark.asyncio
async def test_log_persists_row(db_session, documents):
    session_factory = async_sessionmaker(db_session.bind, expire_on_commit=False)
    row = build_conversation_row(make_turn(documents), streaming=False, country="DE")

    logged = await ConversationLogger(session_factory).log(row)

    assert logged["share_token"] == row["share_token"]
    result = await db_session.execute(select(ChatConversation).where(ChatConversation.id == logged["id"]))
    stored = result.scalars().one()
    assert stored.question == "What is the metformin dose?"
    assert stored.conversation_metadata["owner_name"] == "Acme"
    assert await count_conversations(db_session, SESSION_ID) == 1


@pytest.mark.asyncio
async def test_log_failure_returns_none(documents):
    session_factory = MagicMock(side_effect=RuntimeError("database unavailable"))
    row = build_conversation_row(make_turn(documents), streaming=False)

    assert await ConversationLogger(session_factory).log(row) is None


@pytest.mark.asyncio
async def test_log_records_insert_duration(db_session, documents):
    session_factory = async_sessionmaker(db_session.bind, expire_on_commit=False)
    ticks = iter([10.0, 10.5])
    row = build_conversation_row(make_turn(documents), streaming=True)
    assert row["conversation_metadata"]["timing_breakdown"]["logging_ms"] == 0

    logged = await ConversationLogger(session_factory, clock=lambda: next(ticks)).log(row)

    result = await db_session.execute(select(ChatConversation).where(ChatConversation.id == logged["id"]))
    breakdown = result.scalars().one().conversation_metadata["timing_breakdown"]
    assert breakdown["logging_ms"] == 500
    assert breakdown["total_ms"] == row["conversation_metadata"]["timing_breakdown"]["total_ms"]
