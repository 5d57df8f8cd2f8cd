# =============================================================================
# Chat API — Streamed Financial-Assistant Turns
# =============================================================================
#
# Provides POST /chat, which answers one user message as a stream of
# StreamEvent fragments.
#
# FLOW:
#   1. Validate body (422) and bearer token (401)
#   2. Resolve the final-answer model (400 for an unknown provider id)
#   3. History: from the body, or the tail stored for the conversation
#   4. Classify (502 on failure, 503 on missing model config), BEFORE any
#      byte of the stream is sent
#   5. Stream the turn as NDJSON, or SSE when Accept asks for
#      text/event-stream
#   6. (Background) Persist the messages and one TurnMetric row
#
# This endpoint is thin by design: the turn itself lives in
# agents/pipeline.py.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from finchat.agents.classifier import ClassificationError
from finchat.agents.pipeline import TurnPipeline, TurnRequest, TurnResult
from finchat.api.deps import Caller, get_message_store, get_pipeline, require_caller
from finchat.config import settings
from finchat.models.requests import ChatRequest
from finchat.models.responses import ChatErrorDetail
from finchat.services.llm import LLMProvider, create_provider_from_id
from finchat.services.messages import MessageStore
from finchat.services.tracing import TraceContext

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


def wants_sse(http_request: Request) -> bool:
    return "text/event-stream" in http_request.headers.get("accept", "")


# ---------------------------------------------------------------------------
# POST /chat — Answer one chat message
# ---------------------------------------------------------------------------


@router.post(
    "/chat",
    summary="Answer a financial question as a stream of events",
    description=(
        "Classifies the message, gathers evidence from the market-data views, "
        "the user's portfolio, web research and price tools, then streams the "
        "final answer as incremental fragments."
    ),
    responses={
        401: {"description": "Missing or invalid bearer token"},
        502: {"model": ChatErrorDetail, "description": "Classification failed"},
        503: {"description": "Language model not configured"},
    },
)
async def chat_endpoint(
    http_request: Request,
    request: ChatRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(require_caller),
    pipeline: TurnPipeline = Depends(get_pipeline),
    store: MessageStore = Depends(get_message_store),
) -> StreamingResponse:
    logger.info(
        "Chat request: conversation=%s, caller=%s, prompt='%s'",
        request.id, caller.label, request.prompt[:80],
    )

    final_llm: LLMProvider | None = None
    model = settings.final_answer_model or settings.llm_model
    if request.selected_chat_model:
        try:
            final_llm = create_provider_from_id(request.selected_chat_model)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid chat model: {e}") from e
        model = request.selected_chat_model

    if request.history is not None:
        history = [message.model_dump() for message in request.history]
    else:
        try:
            history = await store.history_tail(request.id)
        except Exception as e:
            logger.warning("Could not load history for %s: %s", request.id, e)
            history = []

    turn = TurnRequest(
        conversation_id=request.id,
        prompt=request.prompt,
        history=history,
        username=request.username,
        generate_chat_title=request.generate_chat_title,
        generate_follow_up_questions=request.generate_follow_up_questions,
    )
    trace = TraceContext(
        "chat-turn",
        user_label=caller.label,
        input=request.prompt,
        tags=[request.selected_visibility_type],
    )

    try:
        classification = await pipeline.classify(turn, trace)
    except ClassificationError as e:
        logger.error("Classification failed for %s: %s", request.id, e)
        trace.close(status="error")
        raise HTTPException(
            status_code=502,
            detail=ChatErrorDetail(code="classification_failed", message=str(e)).model_dump(),
        ) from e
    except ValueError as e:
        # Missing API key or configuration error
        logger.error("Configuration error: %s", e)
        trace.close(status="error")
        raise HTTPException(status_code=503, detail=f"Service configuration error: {e}") from e

    result = TurnResult()
    sse = wants_sse(http_request)

    async def body():
        try:
            async for event in pipeline.stream(turn, classification, result, trace, final_llm):
                yield event.to_sse() if sse else event.to_ndjson()
        finally:
            trace.close(output=result.answer, status=result.status)

    # Runs after the last byte of the stream, when `result` is final
    background_tasks.add_task(_persist_turn, store, result, turn, trace, model)

    return StreamingResponse(
        body(),
        media_type="text/event-stream" if sse else "application/x-ndjson",
        headers=SSE_HEADERS,
        background=background_tasks,
    )


# ---------------------------------------------------------------------------
# Background Persistence
# ---------------------------------------------------------------------------


async def _persist_turn(
    store: MessageStore,
    result: TurnResult,
    turn: TurnRequest,
    trace: TraceContext,
    model: str | None,
) -> None:
    """save_turn() logs its own failures; this never raises into the server."""
    await store.save_turn(result.to_record(turn, trace, model))
