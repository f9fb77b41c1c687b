"""Chat request pipeline.

A request passes a fixed sequence of gates, each of which can reject it
with a ChatRequestError, before any embedding, retrieval or generation work
happens. Accepted turns are answered either buffered or as a stream of
events, and every answered turn is logged as a ChatConversation row.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docqa.core.config import settings
from docqa.core.constants import EMBEDDING_DIMENSIONS
from docqa.core.errors import (
    AccessDenied,
    ConversationLimitExceeded,
    GenerationError,
    InvalidDocuments,
    RateLimitExceeded,
)
from docqa.core.tasks import spawn_detached
from docqa.db.session import AsyncSessionLocal
from docqa.schemas.chat import ChatRequest
from docqa.services.chat.access import (
    REASON_NOT_FOUND,
    REASON_REQUIRES_AUTH,
    REASON_REQUIRES_PASSCODE,
    DocumentAccessService,
    token_from_header,
    verify_token,
)
from docqa.services.chat.conversation_logger import ConversationLogger, build_conversation_row, count_conversations
from docqa.services.chat.generation import (
    ChatGenerator,
    build_context,
    build_messages,
    build_system_prompt,
    document_display_name,
)
from docqa.services.chat.geolocation import GeoLocator, get_geolocator
from docqa.services.chat.models import apply_model_override, normalize_model, provider_model_name
from docqa.services.chat.moderation import ContentModerator, get_moderator
from docqa.services.chat.rate_limiter import RateLimiter, get_rate_limiter
from docqa.services.chat.turn import ChatTurn, Timings
from docqa.services.chat.validation import (
    parse_document_param,
    validate_document_count,
    validate_message,
    validate_session_id,
)
from docqa.services.documents.chunk_store import ChunkStore
from docqa.services.retrieval.embedding_cache import QueryEmbeddingCache, get_query_embedding_cache
from docqa.services.retrieval.retriever import (
    ChunkRetriever,
    resolve_chunk_limit,
    resolve_embedding_type,
    resolve_owner_info,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Failed to process RAG chat message"


class ChatPipeline:
    """Gated checks, retrieval, generation and logging for one chat request."""

    def __init__(
        self,
        db_session: AsyncSession,
        rate_limiter: Optional[RateLimiter] = None,
        embedding_cache: Optional[QueryEmbeddingCache] = None,
        generator: Optional[ChatGenerator] = None,
        moderator: Optional[ContentModerator] = None,
        conversation_logger: Optional[ConversationLogger] = None,
        geolocator: Optional[GeoLocator] = None,
        access_service: Optional[DocumentAccessService] = None,
        retriever: Optional[ChunkRetriever] = None,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
    ):
        """Initialize the pipeline.

        Args:
            db_session: Request-scoped session used by the gates
            rate_limiter: Per-session limiter, defaults to the process-wide one
            embedding_cache: Query embedding cache
            generator: Chat completion client
            moderator: Profanity and junk checker
            conversation_logger: Writer for ChatConversation rows
            geolocator: IP to country lookup
            access_service: Document access decisions, defaults to one on ``db_session``
            retriever: Fixed retriever; by default one is built per database session
            session_factory: Sessions for work that outlives the request session
        """
        self.db = db_session
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.embedding_cache = embedding_cache or get_query_embedding_cache()
        self.generator = generator or ChatGenerator()
        self.moderator = moderator or get_moderator()
        self.conversation_logger = conversation_logger or ConversationLogger(session_factory)
        self.geolocator = geolocator or get_geolocator()
        self.access_service = access_service or DocumentAccessService(db_session)
        self.retriever = retriever
        self.session_factory = session_factory

    async def prepare(
        self,
        request: ChatRequest,
        authorization: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> ChatTurn:
        """Run every gate and resolve the turn's documents, owner and model.

        Raises:
            ChatRequestError: The first gate that rejects the request
        """
        timings = Timings()
        session_id = validate_session_id(request.session_id)

        decision = await self.rate_limiter.check_limit(session_id)
        if not decision.allowed:
            logger.warning(f"Rate limit exceeded for session {session_id[:8]}... ({decision.reason})")
            raise RateLimitExceeded(
                f"Rate limit exceeded. Please wait {decision.retry_after} seconds before sending another message.",
                rateLimitExceeded=True,
                retryAfter=decision.retry_after,
                limit=decision.limit,
                window=decision.window,
            )

        await self._check_conversation_limit(session_id)

        message = validate_message(request.message)
        moderation = self.moderator.check(message)
        document_slugs = parse_document_param(request.doc)

        with timings.measure("auth"):
            user_id = verify_token(token_from_header(authorization))

        with timings.measure("registry"):
            decisions = await self.access_service.check_access(document_slugs, user_id, request.passcode)
        for access in decisions:
            if not access.allowed and access.reason != REASON_NOT_FOUND:
                raise AccessDenied(
                    "Access denied",
                    access.message(user_id),
                    requires_auth=access.reason == REASON_REQUIRES_AUTH,
                    requires_passcode=access.reason == REASON_REQUIRES_PASSCODE,
                    document=access.slug,
                )

        validate_document_count(document_slugs)
        embedding_type = resolve_embedding_type(request.embedding, len(document_slugs))

        missing = [access.slug for access in decisions if access.reason == REASON_NOT_FOUND]
        if missing:
            raise InvalidDocuments(
                "Invalid Document(s)",
                f"The following document(s) are not available: {', '.join(missing)}",
                documents=missing,
            )

        documents = [access.document for access in decisions]
        owner_info = resolve_owner_info(documents)
        chunk_limit = resolve_chunk_limit(owner_info)
        model = apply_model_override(normalize_model(request.model), documents, owner_info)

        logger.info(
            f"Chat: \"{message[:50]}{'...' if len(message) > 50 else ''}\" | "
            f"{model.effective_model} | {'+'.join(document_slugs)}"
        )
        return ChatTurn(
            session_id=session_id,
            message=message,
            history=list(request.history),
            document_slugs=document_slugs,
            documents=documents,
            user_id=user_id,
            ip_address=ip_address,
            embedding_type=embedding_type,
            owner_info=owner_info,
            chunk_limit=chunk_limit,
            model=model,
            moderation=moderation,
            timings=timings,
        )

    async def handle(
        self,
        request: ChatRequest,
        authorization: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Buffered chat: answer the whole question in one response.

        The conversation row is written by a detached task, so the response
        never carries a conversation id.

        Raises:
            ChatRequestError: A gate rejected the request, or generation failed
        """
        turn = await self.prepare(request, authorization, ip_address)
        country_task = asyncio.ensure_future(self.geolocator.country_for(turn.ip_address))

        try:
            await self._retrieve(turn, self.retriever or ChunkRetriever(ChunkStore(self.db)))
            with turn.timings.measure("generation"):
                turn.response_text = await self.generator.generate(
                    turn.model.effective_model, self._build_messages(turn)
                )
        except Exception as e:
            turn.error = str(e)
            logger.error(f"Chat failed after {turn.timings.elapsed_ms()}ms: {e}", exc_info=True)
            spawn_detached(self._log(turn, False, country_task), name=f"chat-log-{turn.session_id[:8]}")
            raise GenerationError(GENERIC_FAILURE, details=str(e)) from e

        spawn_detached(self._log(turn, False, country_task), name=f"chat-log-{turn.session_id[:8]}")
        logger.info(
            f"Chat completed: {turn.timings.elapsed_ms()}ms | {len(turn.retrieved)} chunks | "
            f"Model: {provider_model_name(turn.model.effective_model)}"
        )
        return self._buffered_response(turn)

    async def stream_turn(self, turn: ChatTurn) -> AsyncIterator[Dict[str, Any]]:
        """Stream events for an accepted turn.

        Yields ``content`` events as fragments arrive, then one ``done`` event
        carrying the logged conversation id and share token, or one ``error``
        event. The work runs in a detached producer, so a client that goes
        away stops receiving events but generation and logging still finish.
        """
        queue: asyncio.Queue = asyncio.Queue()
        spawn_detached(self._produce(turn, queue), name=f"chat-stream-{turn.session_id[:8]}")
        while True:
            event = await queue.get()
            if event is None:
                break
            yield event

    async def _produce(self, turn: ChatTurn, queue: asyncio.Queue) -> None:
        country_task = asyncio.ensure_future(self.geolocator.country_for(turn.ip_address))
        try:
            try:
                if self.retriever is not None:
                    await self._retrieve(turn, self.retriever)
                else:
                    async with self.session_factory() as db:
                        await self._retrieve(turn, ChunkRetriever(ChunkStore(db)))
                fragments: List[str] = []
                with turn.timings.measure("generation"):
                    async for fragment in self.generator.stream(turn.model.effective_model, self._build_messages(turn)):
                        fragments.append(fragment)
                        await queue.put({"type": "content", "chunk": fragment})
                turn.response_text = "".join(fragments)
            except Exception as e:
                turn.error = str(e)
                logger.error(f"Streaming chat failed after {turn.timings.elapsed_ms()}ms: {e}", exc_info=True)

            logged = await self._log(turn, True, country_task)

            if turn.error is not None:
                await queue.put({"type": "error", "error": GENERIC_FAILURE})
                return

            await queue.put({
                "type": "done",
                "metadata": {
                    "responseTime": turn.timings.elapsed_ms(),
                    "chunksUsed": len(turn.retrieved),
                    "retrievalTime": turn.retrieval_time_ms,
                    "model": provider_model_name(turn.model.effective_model),
                    "sessionId": turn.session_id,
                    "conversationId": logged["id"] if logged else None,
                    "shareToken": logged["share_token"] if logged else None,
                },
            })
            logger.info(
                f"Stream completed: {turn.timings.elapsed_ms()}ms | {len(turn.retrieved)} chunks | "
                f"Model: {provider_model_name(turn.model.effective_model)}"
            )
        finally:
            await queue.put(None)

    async def _check_conversation_limit(self, session_id: str) -> None:
        try:
            count = await count_conversations(self.db, session_id)
        except Exception as e:
            logger.warning(f"Conversation count failed for session {session_id[:8]}..., allowing request: {e}")
            await self.db.rollback()
            return

        limit = settings.MAX_CONVERSATION_LENGTH
        if count >= limit:
            logger.info(f"Conversation limit reached for session {session_id[:8]}... ({count}/{limit})")
            raise ConversationLimitExceeded(
                f"You've reached the conversation limit of {limit} messages. Please start a new chat to continue.",
                conversationLimitExceeded=True,
                limit=limit,
                currentCount=count,
            )

    async def _retrieve(self, turn: ChatTurn, retriever: ChunkRetriever) -> None:
        with turn.timings.measure("embedding"):
            query_embedding = await self.embedding_cache.get_or_embed(turn.message, turn.embedding_type)

        with turn.timings.measure("retrieval"):
            turn.retrieved = await retriever.retrieve(
                query_embedding,
                turn.message,
                turn.embedding_type,
                turn.document_slugs,
                turn.chunk_limit,
            )
        turn.retrieval_time_ms = turn.timings.durations.get("retrieval", 0)

    def _build_messages(self, turn: ChatTurn) -> List[Dict[str, str]]:
        context = build_context(turn.retrieved, turn.titles_by_slug, turn.is_multi_document)
        system_prompt = build_system_prompt(
            document_display_name(turn.document_titles),
            context,
            turn.is_multi_document,
            turn.model.effective_model,
        )
        return build_messages(system_prompt, turn.history, turn.message)

    async def _log(
        self,
        turn: ChatTurn,
        streaming: bool,
        country_task: "asyncio.Future[Optional[str]]",
    ) -> Optional[Dict[str, Any]]:
        try:
            country = await country_task
        except Exception as e:
            logger.warning(f"Country lookup failed: {e}")
            country = None

        row = build_conversation_row(turn, streaming, country)
        return await self.conversation_logger.log(row)

    def _buffered_response(self, turn: ChatTurn) -> Dict[str, Any]:
        return {
            "response": turn.response_text,
            "model": turn.model.effective_model,
            "actualModel": provider_model_name(turn.model.effective_model),
            "sessionId": turn.session_id,
            "conversationId": None,
            "metadata": {
                "documentSlugs": list(turn.document_slugs),
                "documentTitle": " + ".join(turn.document_titles) or "Unknown",
                "isMultiDocument": turn.is_multi_document,
                "responseTime": turn.timings.elapsed_ms(),
                "retrievalMethod": "rag-multi" if turn.is_multi_document else "rag",
                "chunksUsed": len(turn.retrieved),
                "retrievalTime": turn.retrieval_time_ms,
                "embedding_type": turn.embedding_type,
                "embedding_dimensions": EMBEDDING_DIMENSIONS.get(turn.embedding_type),
                "chunkSimilarities": [
                    {"index": c.chunk_index, "similarity": c.similarity, "source": c.document_slug}
                    for c in turn.retrieved
                ],
            },
        }
