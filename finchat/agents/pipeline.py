# =============================================================================
# Turn Pipeline — One Chat Turn from Classification to Final Event
# =============================================================================
#
# The route drives a turn in two phases:
#
#   1. classify()  — awaited BEFORE the response starts, so a failure can
#                    still be an HTTP 502 instead of a broken stream
#   2. stream()    — async generator of StreamEvents for the response body
#
# STREAM FLOW:
#   classification status → classification reasoning →
#   [evidence graph: portfolio / step / sql events] →
#   "Stitching together a response..." → answer deltas → answer-complete
#
# DESIGN DECISION: Producer task + queue.
# Evidence tasks emit status events from inside concurrently running
# coroutines. They push onto an asyncio.Queue; stream() is the single
# consumer that yields them in arrival order. The consumer owns the turn
# deadline: when it passes, the producer is cancelled and one `error`
# event closes the stream. A client disconnect closes the generator,
# whose finally-block cancels the producer the same way.
#
# DESIGN DECISION: Errors end the stream with an event, never silence.
# Synthesis failure, synthesis timeout, turn timeout and unexpected errors
# each produce exactly one `error` event as the last fragment, and the
# TurnResult records status="error" so the turn is never persisted as a
# success.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

from finchat.agents.classifier import classify
from finchat.agents.orchestrator import EvidenceBundle, EvidenceDeps, gather_evidence
from finchat.agents.schemas import Classification
from finchat.agents.synthesizer import SynthesisError, synthesize
from finchat.config import settings
from finchat.models.responses import StreamEvent, error_event, status_event
from finchat.services.llm import LLMProvider
from finchat.services.messages import TurnRecord
from finchat.services.tracing import TraceContext

logger = logging.getLogger(__name__)


@dataclass
class TurnRequest:
    """The inputs of one turn, after the route has resolved the history."""

    conversation_id: str
    prompt: str
    history: list[dict[str, str]] = field(default_factory=list)
    username: str | None = None
    generate_chat_title: bool = False
    generate_follow_up_questions: bool = False


@dataclass
class TurnResult:
    """Filled in while the turn streams; read afterwards for persistence."""

    status: str = "running"
    error_code: str | None = None
    classification: Classification | None = None
    bundle: EvidenceBundle | None = None
    answer: dict[str, Any] | None = None

    def fail(self, code: str) -> None:
        self.status = "error"
        self.error_code = code

    def to_record(self, request: TurnRequest, trace: TraceContext, model: str | None) -> TurnRecord:
        bundle = self.bundle
        return TurnRecord(
            conversation_id=request.conversation_id,
            question=request.prompt,
            status=self.status,
            total_latency_ms=trace.elapsed_ms,
            answer_text=self.answer.get("answer") if self.answer else None,
            answer_payload=self.answer,
            classification_flags=self.classification.topic_flags() if self.classification else None,
            model=model,
            error_code=self.error_code,
            input_tokens=trace.usage.input_tokens,
            output_tokens=trace.usage.output_tokens,
            evidence_rows=bundle.evidence_row_count if bundle else 0,
            ticker_matches=len(bundle.ticker_matches) if bundle else 0,
            portfolio_positions=len(bundle.portfolio) if bundle else 0,
        )


class TurnPipeline:
    """Runs chat turns against one set of evidence collaborators."""

    def __init__(self, deps: EvidenceDeps) -> None:
        self._deps = deps

    async def classify(self, request: TurnRequest, trace: TraceContext | None = None) -> Classification:
        """Raises ClassificationError; ValueError if the model is not configured."""
        llm = self._deps.llm_for_stage("classification")
        return await classify(llm, request.prompt, request.history, trace)

    async def stream(
        self,
        request: TurnRequest,
        classification: Classification,
        result: TurnResult,
        trace: TraceContext,
        final_llm: LLMProvider | None = None,
    ) -> AsyncIterator[StreamEvent]:
        result.classification = classification
        queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
        producer = asyncio.create_task(
            self._produce(request, classification, result, trace, final_llm, queue.put_nowait)
        )
        loop = asyncio.get_running_loop()
        deadline = loop.time() + settings.turn_timeout_seconds - trace.elapsed_ms / 1000

        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=max(deadline - loop.time(), 0))
                except asyncio.TimeoutError:
                    logger.warning("Turn for %s hit the %ss deadline", request.conversation_id,
                                   settings.turn_timeout_seconds)
                    producer.cancel()
                    result.fail("turn_timeout")
                    yield error_event("turn_timeout", "The answer took too long. Please try again.")
                    return
                if event is None:
                    return
                yield event
        finally:
            if not producer.done():
                producer.cancel()
                if result.status == "running":
                    result.status = "cancelled"
                    logger.info("Turn for %s cancelled by the client", request.conversation_id)

    async def _produce(
        self,
        request: TurnRequest,
        classification: Classification,
        result: TurnResult,
        trace: TraceContext,
        final_llm: LLMProvider | None,
        emit: Callable[[StreamEvent | None], None],
    ) -> None:
        try:
            emit(status_event("classification", "Identifying what data I need..."))
            emit(status_event(
                "classification_reasoning",
                classification.reasoning_in_simple_language_addressed_at_user,
            ))

            bundle = await gather_evidence(
                classification,
                request.prompt,
                self._deps,
                history=request.history,
                username=request.username,
                emit=emit,
                trace=trace,
            )
            result.bundle = bundle

            emit(status_event("final_step", "Stitching together a response..."))
            llm = final_llm or self._deps.llm_for_stage("final_answer")
            await asyncio.wait_for(
                self._synthesize_into(request, bundle, llm, result, trace, emit),
                timeout=settings.synthesis_timeout_seconds,
            )
            result.status = "completed"
        except asyncio.TimeoutError:
            logger.warning("Synthesis timed out after %ss", settings.synthesis_timeout_seconds)
            result.fail("synthesis_timeout")
            emit(error_event("synthesis_timeout", "The answer took too long to generate."))
        except SynthesisError as e:
            logger.warning("Synthesis failed: %s", e)
            result.fail("synthesis_failed")
            emit(error_event("synthesis_failed", "The answer could not be completed. Please try again."))
        except Exception as e:
            logger.exception("Turn failed: %s", e)
            result.fail("internal_error")
            emit(error_event("internal_error", "Something went wrong while answering."))
        finally:
            emit(None)

    async def _synthesize_into(
        self,
        request: TurnRequest,
        bundle: EvidenceBundle,
        llm: LLMProvider,
        result: TurnResult,
        trace: TraceContext,
        emit: Callable[[StreamEvent | None], None],
    ) -> None:
        async for event in synthesize(
            bundle,
            request.prompt,
            llm,
            history=request.history,
            generate_chat_title=request.generate_chat_title,
            generate_follow_up_questions=request.generate_follow_up_questions,
            trace=trace,
        ):
            if event.kind == "answer-complete":
                result.answer = event.answer
            emit(event)
