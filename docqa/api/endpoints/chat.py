"""Chat endpoints: buffered JSON answers and Server-Sent Events streams."""

import json
import logging
from typing import Any, AsyncIterator, Dict, Iterable

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from docqa.api.deps import get_client_ip, get_db
from docqa.core.errors import ChatRequestError
from docqa.schemas.chat import ChatRequest
from docqa.services.chat.pipeline import GENERIC_FAILURE, ChatPipeline

logger = logging.getLogger(__name__)
router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_chat_pipeline(db: AsyncSession = Depends(get_db)) -> ChatPipeline:
    return ChatPipeline(db)


def format_sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


async def _sse_frames(events: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[str]:
    async for event in events:
        yield format_sse(event)


async def _static_events(events: Iterable[Dict[str, Any]]) -> AsyncIterator[Dict[str, Any]]:
    for event in events:
        yield event


def _event_stream(events: AsyncIterator[Dict[str, Any]]) -> StreamingResponse:
    return StreamingResponse(_sse_frames(events), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("")
async def chat(
    body: ChatRequest,
    request: Request,
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
):
    """
    Answer a question about one or more documents.

    Gate rejections come back as structured JSON with their own status code.
    """
    try:
        return await pipeline.handle(body, request.headers.get("authorization"), get_client_ip(request))
    except ChatRequestError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_response())
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error processing chat message: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": GENERIC_FAILURE, "details": str(e)})


@router.post("/stream")
async def chat_stream(
    body: ChatRequest,
    request: Request,
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
):
    """
    Stream an answer as Server-Sent Events.

    The gates run before the stream opens; a rejection is delivered as a
    single ``error`` event.
    """
    try:
        turn = await pipeline.prepare(body, request.headers.get("authorization"), get_client_ip(request))
    except ChatRequestError as e:
        return _event_stream(_static_events([{**e.to_response(), "type": "error"}]))
    except Exception as e:
        logger.error(f"Error preparing chat stream: {e}", exc_info=True)
        return _event_stream(_static_events([{"error": str(e), "type": "error"}]))

    return _event_stream(pipeline.stream_turn(turn))
