# =============================================================================
# Query Executor — Guarded Execution of Model-Written SQL
# =============================================================================
#
# Runs the candidate queries produced by the query agents against the
# read-only evidence engine.
#
# PER QUERY:
#   1. No SQL text (or not a string)  → empty result, "No query to execute"
#   2. Safety filter hit              → empty result, "Query is not safe..."
#   3. Quote identifiers, execute     → rows, or the zero-results sentinel
#   4. Any execution error            → one {reasoning, errorRunningQuery} row
#
# Every non-empty result starts with a {"reasoning": ...} row so the
# synthesizer can tell which sub-question a block of rows answers.
#
# DESIGN DECISION: Failures become data.
# A query that fails is reported to the client as a failed step and to the
# synthesizer as an error row. Nothing here raises past execute_all().
#
# DESIGN DECISION: Order follows dispatch, not completion.
# Queries run concurrently with asyncio.gather, which returns results in
# argument order, so the merged sequence is deterministic.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from finchat.agents.schemas import ComparisonRow
from finchat.config import settings
from finchat.models.responses import StreamEvent, step_finish
from finchat.services.sql_safety import is_dangerous, quote_identifiers
from finchat.services.tracing import TraceContext

logger = logging.getLogger(__name__)

NO_RESULTS_SENTINEL = (
    "Above query successful but no results were returned, probably because "
    "there are no results that match the criteria"
)

EventSink = Callable[[StreamEvent], None]


@dataclass(frozen=True)
class CandidateQuery:
    """A model-proposed read query and the sub-question it answers."""

    reasoning: str
    number_of_results: int | None
    sql: Any  # str, or None when the agent declined
    domain: str
    step_name: str


def _jsonable(value: Any) -> Any:
    # Decimal and date values from the driver go to the model as text
    if isinstance(value, (int, float, str, bool)) or value is None:
        return value
    if isinstance(value, (list, dict)):
        return value
    return str(value)


class QueryExecutor:
    """Executes CandidateQuery objects, converting every failure into data."""

    def __init__(
        self,
        engine: AsyncEngine,
        emit: EventSink | None = None,
        trace: TraceContext | None = None,
    ) -> None:
        self._engine = engine
        self._emit = emit or (lambda event: None)
        self._trace = trace

    async def execute(self, query: CandidateQuery) -> list[ComparisonRow]:
        if not query.sql or not isinstance(query.sql, str):
            self._emit(step_finish(query.step_name, False, "No query to execute"))
            return []

        if is_dangerous(query.sql):
            logger.warning("Rejected unsafe %s query: %s", query.domain, query.sql[:200])
            self._emit(step_finish(query.step_name, False, "Query is not safe to execute"))
            return []

        sql = quote_identifiers(query.sql)
        span = self._trace.span(f"sql_{query.domain}", input=sql) if self._trace else None
        start = time.monotonic()

        try:
            rows = await asyncio.wait_for(self._run(sql), timeout=settings.query_timeout_seconds)
        except Exception as e:
            error_text = str(e) or type(e).__name__
            logger.warning("%s query failed: %s", query.domain, error_text)
            if span:
                span.end(error=e)
            self._emit(step_finish(query.step_name, False, error_text))
            return [{"reasoning": query.reasoning, "errorRunningQuery": error_text}]

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info("%s query returned %d rows in %dms", query.domain, len(rows), elapsed_ms)
        if span:
            span.end(output={"rows": len(rows)})

        if not rows:
            self._emit(step_finish(query.step_name, False, NO_RESULTS_SENTINEL))
            return [{"reasoning": query.reasoning}, NO_RESULTS_SENTINEL]

        self._emit(step_finish(
            query.step_name,
            isinstance(rows[0], dict),
            f"Data retrieved - {len(rows)} results",
        ))
        return [{"reasoning": query.reasoning}, *rows]

    async def _run(self, sql: str) -> list[dict[str, Any]]:
        # The connection is returned to the pool on every exit path
        async with self._engine.connect() as conn:
            result = await conn.execute(text(sql))
            return [
                {key: _jsonable(value) for key, value in row.items()}
                for row in result.mappings().all()
            ]

    async def execute_all(self, queries: list[CandidateQuery]) -> list[ComparisonRow]:
        """Run all queries concurrently; concatenate results in dispatch order."""
        results = await asyncio.gather(*(self.execute(query) for query in queries))
        merged: list[ComparisonRow] = []
        for rows in results:
            merged.extend(rows)
        return merged
