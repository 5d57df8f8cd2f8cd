# =============================================================================
# API Response Models — Health & Stream Events
# =============================================================================
#
# POST /chat does not return one JSON body: it streams a sequence of
# StreamEvent fragments. Each fragment is one JSON object tagged by `kind`:
#
#   status-update        progress text, optionally tied to a named step
#   answer-text-delta    FinalAnswer fragment growing the markdown answer
#   answer-metadata      FinalAnswer fragment for title / display fields
#   chart-data           FinalAnswer fragment with chart type and points
#   ticker-list          FinalAnswer fragment with tickers/usernames to show
#   follow-up-questions  FinalAnswer fragment with follow-up questions
#   answer-complete      the validated FinalAnswer
#   error                {code, message}; always the last event
#
# Every fragment-carrying event holds a `delta` the client applies with the
# same merge rule as agents/partial.merge_partial: strings append, lists
# extend, scalars are set once.
#
# DESIGN DECISION: Two framings of one event model.
# NDJSON (one JSON object per line) is the default; Server-Sent Events are
# used when the client's Accept header asks for text/event-stream, with the
# event kind as the SSE event name.
# =============================================================================

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class HealthResponse(BaseModel):
    """Response for GET /health. Confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


EventKind = Literal[
    "status-update",
    "answer-text-delta",
    "answer-metadata",
    "chart-data",
    "ticker-list",
    "follow-up-questions",
    "answer-complete",
    "error",
]

StatusSubtype = Literal[
    "classification",
    "classification_reasoning",
    "step_start",
    "step_finish",
    "sql_step",
    "final_step",
]


class StreamEvent(BaseModel):
    """One fragment of a streamed chat turn."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    kind: EventKind

    # status-update
    subtype: StatusSubtype | None = None
    step_name: str | None = None
    success: bool | None = None
    text: str | None = None

    # answer fragments / answer-complete
    delta: dict[str, Any] | None = None
    answer: dict[str, Any] | None = None

    # error
    code: str | None = None
    message: str | None = None

    def payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_ndjson(self) -> str:
        return json.dumps(self.payload(), default=str) + "\n"

    def to_sse(self) -> str:
        return f"event: {self.kind}\ndata: {json.dumps(self.payload(), default=str)}\n\n"


# ---------------------------------------------------------------------------
# Event constructors
# ---------------------------------------------------------------------------


def status_event(
    subtype: StatusSubtype,
    text: str,
    step_name: str | None = None,
    success: bool | None = None,
) -> StreamEvent:
    return StreamEvent(
        kind="status-update",
        subtype=subtype,
        text=text,
        step_name=step_name,
        success=success,
    )


def step_start(step_name: str, text: str | None = None) -> StreamEvent:
    return status_event("step_start", text or f"Getting {step_name} data", step_name=step_name)


def step_finish(step_name: str, success: bool, text: str) -> StreamEvent:
    return status_event("step_finish", text, step_name=step_name, success=success)


def error_event(code: str, message: str) -> StreamEvent:
    return StreamEvent(kind="error", code=code, message=message)


class ChatErrorDetail(BaseModel):
    """`detail` of HTTP errors raised before the stream starts."""

    code: str = Field(description="Machine-readable error code, e.g. classification_failed")
    message: str
