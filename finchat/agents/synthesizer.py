# =============================================================================
# Final Synthesizer — Streamed FinalAnswer as Typed Delta Events
# =============================================================================
#
# One streamed structured generation over the evidence bundle. Every
# growing snapshot from stream_object() is reduced to a delta with
# diff_partial() and split into client events by field:
#
#   answer                              → answer-text-delta
#   chatTitle, type, displayPreference  → answer-metadata
#   chartType, chartData                → chart-data
#   tickersToDisplay, usernamesToDisplay → ticker-list
#   followUpQuestions                   → follow-up-questions
#
# The validated answer then goes through finalize_answer() and its
# remaining delta is sent, followed by one answer-complete event.
#
# DESIGN DECISION: Chart fields are held back until the end.
# Chart suppression (fewer than min_chart_entities points) can only be
# decided on the complete answer. Streaming `type`, `chartType` or
# `chartData` early could contradict the final shape, so those keys are
# sent once, from the finalized answer. Follow-up questions are capped
# while streaming, so capping them at the end never removes a sent item.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import date
from typing import Any

from finchat.agents.orchestrator import EvidenceBundle
from finchat.agents.partial import diff_partial, merge_partial
from finchat.agents.prompts import final_answer_message, final_answer_system, history_tail
from finchat.agents.schemas import FinalAnswer
from finchat.config import settings
from finchat.models.responses import StreamEvent
from finchat.services.llm import LLMProvider
from finchat.services.structured import StructuredOutputError, stream_object
from finchat.services.tracing import TraceContext

logger = logging.getLogger(__name__)

DEFERRED_KEYS = frozenset({"type", "chartType", "chartData"})

EVENT_KIND_BY_KEY = {
    "answer": "answer-text-delta",
    "chatTitle": "answer-metadata",
    "type": "answer-metadata",
    "displayPreference": "answer-metadata",
    "chartType": "chart-data",
    "chartData": "chart-data",
    "tickersToDisplay": "ticker-list",
    "usernamesToDisplay": "ticker-list",
    "followUpQuestions": "follow-up-questions",
}


class SynthesisError(Exception):
    """The final answer stream failed after it had started."""


def follow_up_count(requested: bool) -> int:
    return settings.max_follow_up_questions if requested else 0


def finalize_answer(
    answer: FinalAnswer,
    follow_ups: int,
    min_chart_entities: int | None = None,
) -> FinalAnswer:
    """Cap follow-up questions and drop charts with too few points."""
    min_chart_entities = min_chart_entities or settings.min_chart_entities
    updates: dict[str, Any] = {"follow_up_questions": answer.follow_up_questions[:follow_ups]}
    if len(answer.chart_data) < min_chart_entities:
        updates["chart_data"] = []
        updates["chart_type"] = "None"
        if answer.type == "chart":
            updates["type"] = "text"
    return answer.model_copy(update=updates)


def shape_snapshot(snapshot: dict[str, Any], follow_ups: int) -> dict[str, Any]:
    """Drop the deferred keys and cap follow-ups in a partial snapshot."""
    shaped = {key: value for key, value in snapshot.items() if key not in DEFERRED_KEYS}
    questions = shaped.get("followUpQuestions")
    if isinstance(questions, list):
        shaped["followUpQuestions"] = questions[:follow_ups]
    return shaped


def delta_events(delta: dict[str, Any]) -> list[StreamEvent]:
    """Split one delta into events, one per event kind, in field order."""
    grouped: dict[str, dict[str, Any]] = {}
    for key, value in delta.items():
        kind = EVENT_KIND_BY_KEY.get(key)
        if kind is None:
            continue
        grouped.setdefault(kind, {})[key] = value
    return [StreamEvent(kind=kind, delta=fields) for kind, fields in grouped.items()]


def _conversation(history: list[dict[str, str]], content: str) -> list[dict[str, str]]:
    messages = [dict(m) for m in history_tail(history)]
    while messages and messages[0]["role"] != "user":
        messages.pop(0)
    if messages and messages[-1]["role"] == "user":
        messages[-1]["content"] = f"{messages[-1]['content']}\n\n{content}"
    else:
        messages.append({"role": "user", "content": content})
    return messages


async def synthesize(
    bundle: EvidenceBundle,
    prompt: str,
    llm: LLMProvider,
    history: list[dict[str, str]] | None = None,
    generate_chat_title: bool = False,
    generate_follow_up_questions: bool = False,
    trace: TraceContext | None = None,
    today: date | None = None,
) -> AsyncIterator[StreamEvent]:
    """
    Stream the final answer as delta events, then one answer-complete event.

    Raises SynthesisError if the model stream fails, the reply does not
    validate, or a snapshot contradicts an earlier delta.
    """
    follow_ups = follow_up_count(generate_follow_up_questions)
    system = final_answer_system(
        today or date.today(),
        generate_chat_title,
        follow_ups,
        wants_to_trade=bundle.classification.user_wants_to_trade_an_asset,
    )
    content = final_answer_message(
        prompt,
        bundle.evidence.kind,
        bundle.evidence.to_prompt_data(),
        bundle.portfolio,
        bundle.portfolio_analysis,
        bundle.web_research,
        bundle.additional_data,
    )
    messages = _conversation(history or [], content)

    generation = trace.generation("final_answer", input=prompt) if trace else None
    emitted: dict[str, Any] = {}
    answer: FinalAnswer | None = None

    try:
        async for item in stream_object(
            llm, FinalAnswer, messages=messages, system=system, stream_fields=("answer",),
        ):
            if isinstance(item, FinalAnswer):
                answer = finalize_answer(item, follow_ups)
                snapshot = answer.model_dump(by_alias=True)
                delta = diff_partial(emitted, snapshot, final=True)
            else:
                delta = diff_partial(emitted, shape_snapshot(item, follow_ups))
            if not delta:
                continue
            emitted = merge_partial(emitted, delta)
            for event in delta_events(delta):
                yield event
    except (StructuredOutputError, ValueError) as e:
        if generation:
            generation.end(error=e)
        raise SynthesisError(f"Final answer could not be completed: {e}") from e
    except Exception as e:
        if generation:
            generation.end(error=e)
        raise SynthesisError(f"Final answer stream failed: {e}") from e

    if answer is None:
        raise SynthesisError("Final answer stream ended without an answer")

    final = answer.model_dump(by_alias=True)
    if generation:
        generation.end(output=final)
    logger.info(
        "Final answer: type=%s, %d chars, %d tickers, %d follow-ups",
        answer.type, len(answer.answer), len(answer.tickers_to_display),
        len(answer.follow_up_questions),
    )
    yield StreamEvent(kind="answer-complete", answer=final)
