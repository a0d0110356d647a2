"""FastAPI route definitions for the wellness agent API."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Iterator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from wellness_agent.api.schemas import (
    ChatRequest,
    CreateThreadRequest,
    HealthResponse,
    ResumeRequest,
    TurnResponse,
)
from wellness_agent.engine import ConversationEngine, Disposition, TurnResult, TurnStream, disposition_of
from wellness_agent.exceptions import ProtocolError, ThreadNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_engine(request: Request) -> ConversationEngine:
    """Retrieve the conversation engine from app state.

    The engine is initialised once during the FastAPI lifespan (see
    ``server.py``).
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=503,
            detail="The agent is still starting up. Please try again in a moment.",
        )
    return engine


def _protocol_http_error(exc: ProtocolError) -> HTTPException:
    status_code = 404 if isinstance(exc, ThreadNotFoundError) else 400
    return HTTPException(status_code=status_code, detail=str(exc))


def _to_response(result: TurnResult, request_id: str) -> TurnResponse:
    if result.disposition is Disposition.ERROR:
        # Details stay in the server log; the client gets a generic message.
        logger.error("[%s] Run on thread %s failed: %s", request_id, result.thread_id, result.error)
        raise HTTPException(status_code=500, detail="An internal error occurred. Please try again.")
    return TurnResponse.from_state(result.state, result.disposition.value)


def _sse(stream: TurnStream, request_id: str) -> Iterator[str]:
    """Encode a turn stream as server-sent events.

    One ``state`` event per snapshot, then a single ``done`` event carrying
    the disposition (or ``error``).  A client that disconnects early closes
    the stream, which releases the thread.
    """
    try:
        for snapshot in stream:
            payload = TurnResponse.from_state(snapshot, disposition_of(snapshot).value)
            yield f"event: state\ndata: {payload.model_dump_json()}\n\n"
    finally:
        stream.close()

    result = stream.result
    if result is None or result.disposition is Disposition.ERROR:
        logger.error("[%s] Streamed run on thread %s failed", request_id, stream.thread_id)
        data = json.dumps({"disposition": Disposition.ERROR.value, "detail": "An internal error occurred."})
        yield f"event: error\ndata: {data}\n\n"
        return
    yield f"event: done\ndata: {json.dumps({'disposition': result.disposition.value})}\n\n"


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/threads", response_model=TurnResponse, status_code=201)
async def create_thread(request: CreateThreadRequest, http_request: Request):
    """Open a conversation thread and return the greeting."""
    engine = _get_engine(http_request)
    request_id = getattr(http_request.state, "request_id", "?")
    thread_id = request.thread_id or str(uuid.uuid4())

    result = await asyncio.to_thread(engine.start_turn, thread_id, "", user_key=request.user_key)
    return _to_response(result, request_id)


@router.get("/threads/{thread_id}", response_model=TurnResponse)
async def get_thread(thread_id: str, http_request: Request):
    """Current state of a thread, including any pending question."""
    engine = _get_engine(http_request)
    try:
        state = await asyncio.to_thread(engine.get_snapshot, thread_id)
    except ProtocolError as exc:
        raise _protocol_http_error(exc) from exc
    return TurnResponse.from_state(state, disposition_of(state).value)


@router.post("/chat", response_model=TurnResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Send a message to the assistant and run the graph to completion.

    ``engine.start_turn()`` is synchronous and blocking (it talks to the
    Anthropic API), so it is offloaded with ``asyncio.to_thread`` to keep
    the event loop responsive.
    """
    engine = _get_engine(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    result = await asyncio.to_thread(
        engine.start_turn,
        request.thread_id,
        request.message,
        user_key=request.user_key,
        existing_event_id=request.existing_event_id,
    )
    return _to_response(result, request_id)


@router.post("/chat/stream")
async def chat_stream(request: ChatRequest, http_request: Request):
    """Like ``/chat`` but streams every intermediate state as SSE."""
    engine = _get_engine(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    stream = await asyncio.to_thread(
        engine.stream_turn,
        request.thread_id,
        request.message,
        user_key=request.user_key,
        existing_event_id=request.existing_event_id,
    )
    return StreamingResponse(_sse(stream, request_id), media_type="text/event-stream")


@router.post("/resume", response_model=TurnResponse)
async def resume(request: ResumeRequest, http_request: Request):
    """Answer the thread's pending question (slot choice or confirmation)."""
    engine = _get_engine(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        result = await asyncio.to_thread(engine.resume_turn, request.thread_id, request.response)
    except ProtocolError as exc:
        logger.info("[%s] Rejected resume: %s", request_id, exc)
        raise _protocol_http_error(exc) from exc
    return _to_response(result, request_id)


@router.post("/resume/stream")
async def resume_stream(request: ResumeRequest, http_request: Request):
    """Like ``/resume`` but streams every intermediate state as SSE."""
    engine = _get_engine(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        stream = await asyncio.to_thread(engine.stream_resume, request.thread_id, request.response)
    except ProtocolError as exc:
        logger.info("[%s] Rejected resume: %s", request_id, exc)
        raise _protocol_http_error(exc) from exc
    return StreamingResponse(_sse(stream, request_id), media_type="text/event-stream")
