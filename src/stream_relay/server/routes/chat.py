"""Resumable chat stream endpoints.

GET  /api/chat/stream                    – attach to a conversation, receive SSE chunks
GET  /api/chat/status/{conversation_id}  – read-only session status
POST /api/chat/end/{conversation_id}     – end a conversation manually
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from stream_relay.server.schemas import ConversationStatusOut, EndConversationOut
from stream_relay.server.sinks import QueueSink
from stream_relay.streaming import NO_SEQUENCE, ConversationSession, SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


def get_registry(request: Request) -> SessionRegistry:
    """The app-wide session registry created in the lifespan."""
    return request.app.state.registry


def _new_observer_id() -> str:
    return f"client_{uuid.uuid4().hex[:12]}"


def _sse_frame(payload: dict) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


@router.get("/stream")
async def stream(
    conversation_id: Optional[str] = Query(default=None, alias="conversationId"),
    message: str = Query(default=""),
    last_sequence: int = Query(default=NO_SEQUENCE, alias="lastSequence", ge=NO_SEQUENCE),
    registry: SessionRegistry = Depends(get_registry),
):
    """Attach to a conversation and stream its chunks as Server-Sent Events.

    Flow:
      1. Reject requests without a conversation id (nothing is created)
      2. Get or create the session (starting its producer if new)
      3. Attach a per-request sink; missed chunks after ``lastSequence``
         are replayed first
      4. Forward live chunks until a completed / error chunk, or until the
         sink is closed by a manual end
      5. Detach on completion, disconnect or error
    """
    if not conversation_id or not conversation_id.strip():
        raise HTTPException(status_code=400, detail="conversationId is required")

    session = await registry.get_or_create(conversation_id, message)
    observer_id = _new_observer_id()
    logger.info(
        "New SSE connection observer=%s conversation=%s lastSequence=%d",
        observer_id, conversation_id, last_sequence,
    )

    return StreamingResponse(
        content=_sse_generator(session, observer_id, last_sequence),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


async def _sse_generator(
    session: ConversationSession, observer_id: str, last_sequence: int
) -> AsyncIterator[str]:
    sink = QueueSink(observer_id, session.conversation_id)
    try:
        await session.attach_observer(observer_id, sink, last_sequence)
        async for chunk in sink:
            yield _sse_frame(chunk.to_payload())
            if chunk.is_terminal:
                break
    except Exception:
        logger.exception("Error in SSE stream for observer %s", observer_id)
        raise
    finally:
        sink.close()
        await session.detach_observer(observer_id, sink)
        logger.info("SSE connection closed observer=%s", observer_id)


@router.get(
    "/status/{conversation_id}",
    response_model=ConversationStatusOut,
    response_model_exclude_none=True,
)
async def status(conversation_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Read-only view of a conversation; ``exists: false`` if unknown."""
    session = registry.get(conversation_id)
    if session is None:
        return ConversationStatusOut(exists=False)
    snap = session.snapshot()
    return ConversationStatusOut(
        exists=True,
        status=snap["status"],
        last_sequence=snap["last_sequence"],
        observer_count=snap["observer_count"],
        created_at=snap["created_at"],
        last_activity_at=snap["last_activity_at"],
    )


@router.post("/end/{conversation_id}", response_model=EndConversationOut)
async def end(conversation_id: str, registry: SessionRegistry = Depends(get_registry)):
    """End a conversation regardless of its state."""
    if await registry.end(conversation_id):
        return EndConversationOut(success=True, message="Conversation ended")
    return EndConversationOut(
        success=False, message=f"Conversation '{conversation_id}' does not exist"
    )
