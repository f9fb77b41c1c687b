"""Tests for the gated checks and helpers used by the chat pipeline."""

from unittest.mock import AsyncMock, MagicMock

import httpx
from jose import jwt
import pytest

from docqa.core.config import settings
from docqa.core.constants import AccessLevel
from docqa.core.errors import TooManyDocuments, ValidationFailed
from docqa.db.models.owner import UserOwnerAccess
from docqa.schemas.chat import HistoryMessage
from docqa.services.chat.access import (
    REASON_DENIED,
    REASON_NOT_FOUND,
    REASON_REQUIRES_AUTH,
    REASON_REQUIRES_PASSCODE,
    DocumentAccessService,
    decide_access,
    token_from_header,
    verify_token,
)
from docqa.services.chat.generation import ChatGenerator, build_context, build_messages, build_system_prompt
from docqa.services.chat.geolocation import GeoLocator
from docqa.services.chat.models import apply_model_override, normalize_model
from docqa.services.chat.validation import (
    parse_document_param,
    validate_document_count,
    validate_message,
    validate_session_id,
)
from docqa.services.retrieval.retriever import OwnerInfo, RetrievedChunk, mixed_owner_info
from docqa.tests.conftest import make_document, make_owner


# Validation

def test_validate_session_id_keeps_uuid_and_replaces_garbage():
    session_id = "0b7e2f5c-2b3d-4a51-9a8e-1f2d3c4b5a69"

    assert validate_session_id(session_id) == session_id
    replacement = validate_session_id("not-a-uuid")
    assert replacement != "not-a-uuid"
    assert validate_session_id(replacement) == replacement


def test_validate_message():
    assert validate_message("What is the dose?") == "What is the dose?"
    with pytest.raises(ValidationFailed) as exc_info:
        validate_message("x" * 1501, max_length=1500)
    assert exc_info.value.to_response()["error"] == "Message too long"
    with pytest.raises(ValidationFailed):
        validate_message("")


def test_parse_document_param():
    assert parse_document_param("renal-guide+cardiology-manual renal-guide") == ["renal-guide", "cardiology-manual"]
    assert parse_document_param(["a", " b ", "a"]) == ["a", "b"]
    assert parse_document_param(None) == []


def test_validate_document_count():
    validate_document_count(["a"], max_documents=2)
    with pytest.raises(ValidationFailed):
        validate_document_count([], max_documents=2)
    with pytest.raises(TooManyDocuments) as exc_info:
        validate_document_count(["a", "b", "c"], max_documents=2)
    assert exc_info.value.to_response()["count"] == 3
    assert exc_info.value.status_code == 400


# Access

def test_verify_token(monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", "test-secret")
    token = jwt.encode({"sub": "user-1"}, "test-secret", algorithm="HS256")

    assert verify_token(token) == "user-1"
    assert verify_token("garbage") is None
    assert verify_token(None) is None
    assert token_from_header(f"Bearer {token}") == token
    assert token_from_header("Basic abc") is None


def test_public_and_missing_documents():
    assert decide_access("a", make_document("a"), None, None, {}).allowed
    missing = decide_access("gone", None, "user-1", None, {})
    assert not missing.allowed
    assert missing.reason == REASON_NOT_FOUND


def test_passcode_documents():
    owner = make_owner()
    document = make_document("secret", owner, access_level=AccessLevel.PASSCODE.value, passcode="1234")

    assert decide_access("secret", document, None, " 1234 ", {}).allowed
    assert decide_access("secret", document, None, None, {}).reason == REASON_REQUIRES_PASSCODE
    assert decide_access("secret", document, None, "0000", {}).reason == REASON_DENIED
    assert decide_access("secret", document, "user-1", None, {owner.id: "member"}).allowed


def test_owner_restricted_documents():
    owner = make_owner()
    document = make_document("internal", owner, access_level=AccessLevel.OWNER_RESTRICTED.value)

    assert decide_access("internal", document, None, None, {}).reason == REASON_REQUIRES_AUTH
    assert decide_access("internal", document, "user-2", None, {}).reason == REASON_DENIED
    assert decide_access("internal", document, "user-1", None, {owner.id: "member"}).allowed


def test_owner_admin_only_and_registered_documents():
    owner = make_owner()
    admin_only = make_document("admin", owner, access_level=AccessLevel.OWNER_ADMIN_ONLY.value)
    registered = make_document("members", owner, access_level=AccessLevel.REGISTERED.value)

    assert not decide_access("admin", admin_only, "user-1", None, {owner.id: "member"}).allowed
    assert decide_access("admin", admin_only, "user-1", None, {owner.id: "owner_admin"}).allowed
    assert decide_access("members", registered, "anyone", None, {}).allowed


def test_access_decision_messages():
    decision = decide_access("internal", make_document("internal", make_owner(), access_level="owner_restricted"), None, None, {})

    assert "requires authentication" in decision.message(None)
    assert "do not have permission" in decision.message("user-1")


@pytest.mark.asyncio
async def test_check_access_against_database(db_session):
    owner = make_owner("clinic")
    db_session.add_all([
        make_document("open", owner),
        make_document("internal", owner, access_level=AccessLevel.OWNER_RESTRICTED.value),
        UserOwnerAccess(user_id="user-1", owner_id=owner.id, role="member"),
    ])
    await db_session.commit()
    service = DocumentAccessService(db_session)

    anonymous = await service.check_access(["internal", "open", "missing"], None)
    member = await service.check_access(["internal", "open"], "user-1")

    assert [(d.slug, d.allowed, d.reason) for d in anonymous] == [
        ("internal", False, REASON_REQUIRES_AUTH),
        ("open", True, None),
        ("missing", False, REASON_NOT_FOUND),
    ]
    assert all(d.allowed for d in member)
    assert member[0].document.owner.slug == "clinic"


# Model override

def test_normalize_model():
    assert normalize_model("grok") == "grok"
    assert normalize_model("gpt-9") == settings.DEFAULT_CHAT_MODEL
    assert normalize_model(None) == settings.DEFAULT_CHAT_MODEL


def test_gemini_is_never_overridden():
    document = make_document("a", forced_model="grok-reasoning")

    selection = apply_model_override("gemini", [document], None)

    assert selection.effective_model == "gemini"
    assert not selection.override_applied


def test_document_override_beats_owner():
    owner = make_owner(forced_model="grok")
    info = OwnerInfo(owner_slug=owner.slug, owner_name=owner.name, default_chunk_limit=50, forced_model="grok")
    document = make_document("a", owner, forced_model="grok-reasoning")

    selection = apply_model_override("grok", [document], info)

    assert selection.effective_model == "grok-reasoning"
    assert selection.override_source == "document"
    assert selection.original_model == "grok"


def test_owner_override_applies_without_document_override():
    info = OwnerInfo(owner_slug="acme", owner_name="Acme", default_chunk_limit=50, forced_model="grok-reasoning")

    selection = apply_model_override("grok", [make_document("a"), make_document("b")], info)

    assert selection.effective_model == "grok-reasoning"
    assert selection.override_source == "owner"


def test_multi_document_overrides():
    agreeing = [make_document("a", forced_model="grok"), make_document("b", forced_model="grok")]
    conflicting = [make_document("a", forced_model="grok"), make_document("b", forced_model="gemini")]

    assert apply_model_override("grok-reasoning", agreeing, None).override_source == "multi-document-consensus"
    selection = apply_model_override("grok", conflicting, mixed_owner_info())
    assert selection.effective_model == "grok-reasoning"
    assert selection.override_source == "multi-document-reasoning"


# Prompt building and generation

def retrieved(slug, index, page):
    return RetrievedChunk(
        document_slug=slug,
        chunk_index=index,
        content=f"content {index}",
        page_number=page,
        similarity=0.8,
        text_rank=0.1,
        combined_score=0.59,
        metadata={},
    )


def test_build_context_marks_pages_and_sources():
    chunks = [retrieved("a", 0, 3), retrieved("b", 1, None)]

    single = build_context(chunks[:1], {"a": "Manual A"}, multi_document=False)
    multi = build_context(chunks, {"a": "Manual A", "b": "Manual B"}, multi_document=True)

    assert single == "content 0 [Page 3]"
    assert multi == "content 0 [Page 3] [Source: Manual A]\n\n---\n\ncontent 1 [Source: Manual B]"


def test_build_system_prompt():
    single = build_system_prompt("Renal Guide", "ctx", multi_document=False, model="gemini")
    multi = build_system_prompt("A and B", "ctx", multi_document=True, model="grok")

    assert "based on the Renal Guide" in single
    assert "CONFLICTING" not in single
    assert "RELEVANT EXCERPTS FROM RENAL GUIDE" in single
    assert "multiple documents: A and B" in multi
    assert "CONFLICTING" in multi
    assert "explaining the context" in multi


def test_build_messages_maps_history_roles():
    history = [HistoryMessage(role="user", content="hi"), HistoryMessage(role="model", content="hello")]

    messages = build_messages("system", history, "question")

    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[-1]["content"] == "question"


@pytest.mark.asyncio
async def test_generator_uses_provider_model_name():
    client = MagicMock()
    message = MagicMock(content="The dose is 500mg[1].")
    client.chat.completions.create = AsyncMock(return_value=MagicMock(choices=[MagicMock(message=message)]))
    generator = ChatGenerator(gemini_client=client, temperature=0.2)

    text = await generator.generate("gemini", [{"role": "user", "content": "dose?"}])

    assert text == "The dose is 500mg[1]."
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gemini-2.5-flash"
    assert kwargs["temperature"] == 0.2


@pytest.mark.asyncio
async def test_generator_stream_skips_empty_fragments():
    def event(content):
        return MagicMock(choices=[MagicMock(delta=MagicMock(content=content))])

    async def events():
        for item in [event("The "), event(None), MagicMock(choices=[]), event("answer")]:
            yield item

    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=events())
    generator = ChatGenerator(xai_client=client)

    fragments = [fragment async for fragment in generator.stream("grok", [])]

    assert fragments == ["The ", "answer"]
    assert client.chat.completions.create.await_args.kwargs["stream"] is True


# Geolocation

@pytest.mark.asyncio
async def test_geolocator_looks_up_and_caches():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, json={"status": "success", "countryCode": "de"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        locator = GeoLocator(client=client, base_url="http://geo.test/json")

        assert await locator.country_for("8.8.8.8") == "DE"
        assert await locator.country_for("8.8.8.8") == "DE"

    assert len(calls) == 1
    assert calls[0].startswith("http://geo.test/json/8.8.8.8")


@pytest.mark.asyncio
async def test_geolocator_failures_return_none():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "fail", "message": "reserved range"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        locator = GeoLocator(client=client)

        assert await locator.country_for("8.8.4.4") is None
        assert await locator.country_for("192.168.1.10") is None
        assert await locator.country_for(None) is None
