# =============================================================================
# Turn Tracing — Per-Turn Span & Generation Records
# =============================================================================
#
# Every chat turn gets one TraceContext, created by the pipeline at turn
# start and passed explicitly to each stage. Stages open:
#
#   - spans       for non-model work (ticker resolution, SQL execution,
#                 portfolio fetch)
#   - generations for model calls, carrying model name and token usage
#
# DESIGN DECISION: Context-passing, not a process-wide tracer.
# Concurrent turns share an event loop; a global "current trace" would leak
# spans between them. Each turn owns its context and closes it at the end.
#
# DESIGN DECISION: Telemetry never fails the turn.
# end()/close() swallow and log their own errors. Records are emitted to the
# standard logger (structured `extra` fields) so any log shipper can forward
# them; token totals feed the TurnMetric row.
# =============================================================================

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, input_tokens: int, output_tokens: int) -> None:
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens


@dataclass
class TraceRecord:
    """One finished span or generation."""

    kind: str  # "span" or "generation"
    name: str
    duration_ms: int
    model: str | None = None
    input: Any = None
    output: Any = None
    usage: Usage | None = None
    error: str | None = None


class _Handle:
    """Open span/generation; end() records it on the owning trace."""

    def __init__(
        self,
        trace: TraceContext,
        kind: str,
        name: str,
        input: Any = None,
        model: str | None = None,
    ) -> None:
        self._trace = trace
        self._kind = kind
        self._name = name
        self._input = input
        self._model = model
        self._start = time.monotonic()
        self._ended = False

    def end(
        self,
        output: Any = None,
        usage: Usage | tuple[int, int] | None = None,
        error: BaseException | str | None = None,
    ) -> None:
        if self._ended:
            return
        self._ended = True
        try:
            if isinstance(usage, tuple):
                usage = Usage(*usage)
            record = TraceRecord(
                kind=self._kind,
                name=self._name,
                duration_ms=int((time.monotonic() - self._start) * 1000),
                model=self._model,
                input=self._input,
                output=output,
                usage=usage,
                error=str(error) if error is not None else None,
            )
            self._trace._record(record)
        except Exception as e:
            logger.warning("Trace %s '%s' failed to end: %s", self._kind, self._name, e)


class TraceContext:
    """
    Trace for a single chat turn.

    Usage:
        trace = TraceContext("chat-turn", user_label="Internal Token", input=prompt)
        span = trace.span("ticker_resolution")
        ...
        span.end(output=matches)
        trace.close(output=answer, status="completed")
    """

    def __init__(
        self,
        name: str,
        user_label: str | None = None,
        input: Any = None,
        tags: list[str] | None = None,
    ) -> None:
        self.trace_id = uuid.uuid4().hex
        self.name = name
        self.user_label = user_label
        self.input = input
        self.tags: list[str] = list(tags or [])
        self.records: list[TraceRecord] = []
        self.usage = Usage()
        self.status: str | None = None
        self.output: Any = None
        self._start = time.monotonic()
        self._closed = False

    def span(self, name: str, input: Any = None) -> _Handle:
        return _Handle(self, "span", name, input=input)

    def generation(self, name: str, model: str | None = None, input: Any = None) -> _Handle:
        return _Handle(self, "generation", name, input=input, model=model)

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)

    def _record(self, record: TraceRecord) -> None:
        self.records.append(record)
        if record.usage is not None:
            self.usage.add(record.usage.input_tokens, record.usage.output_tokens)
        logger.debug(
            "trace %s %s '%s' took %dms%s",
            self.trace_id[:8], record.kind, record.name, record.duration_ms,
            f" (error: {record.error})" if record.error else "",
            extra={"trace_id": self.trace_id, "trace_record": record.name},
        )

    def close(self, output: Any = None, status: str = "completed") -> None:
        """Finish the trace and log a one-line summary. Never raises."""
        if self._closed:
            return
        self._closed = True
        try:
            self.status = status
            self.output = output
            logger.info(
                "Trace %s (%s) %s in %dms: %d records, tokens in=%d out=%d, tags=%s",
                self.trace_id[:8], self.name, status, self.elapsed_ms,
                len(self.records), self.usage.input_tokens,
                self.usage.output_tokens, self.tags,
                extra={"trace_id": self.trace_id, "trace_user": self.user_label},
            )
        except Exception as e:
            logger.warning("Trace %s failed to close: %s", self.trace_id[:8], e)
