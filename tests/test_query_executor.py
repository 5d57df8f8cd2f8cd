# =============================================================================
# Unit Tests — Query Executor
# =============================================================================
#
# Runs CandidateQuery objects against a recording fake engine.
#
# Test groups:
#   1. Guards — missing SQL, unsafe SQL never reach the database
#   2. Results — rows, zero rows sentinel, error rows, step events
#   3. execute_all — dispatch-order merge, one failure does not stop others
# =============================================================================

from __future__ import annotations

import asyncio

from finchat.services.query_executor import NO_RESULTS_SENTINEL, CandidateQuery, QueryExecutor
from finchat.services.tracing import TraceContext
from tests.fakes import FakeEngine


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _query(sql, domain="stocks", step="Stock Fundamentals", reasoning="Find cheap tech"):
    return CandidateQuery(
        reasoning=reasoning, number_of_results=None, sql=sql, domain=domain, step_name=step,
    )


def _executor(engine):
    events = []
    return QueryExecutor(engine, emit=events.append), events


class TestGuards:
    def test_null_sql_returns_empty_without_db(self):
        engine = FakeEngine()
        executor, events = _executor(engine)
        assert _run(executor.execute(_query(None))) == []
        assert engine.statements == []
        assert events[0].success is False
        assert events[0].text == "No query to execute"

    def test_non_string_sql_returns_empty(self):
        engine = FakeEngine()
        executor, events = _executor(engine)
        assert _run(executor.execute(_query(["SELECT 1"]))) == []
        assert engine.statements == []

    def test_unsafe_sql_never_executed(self):
        engine = FakeEngine()
        executor, events = _executor(engine)
        rows = _run(executor.execute(_query("DELETE FROM fundamentals_view")))
        assert rows == []
        assert engine.statements == []
        assert events[0].subtype == "step_finish"
        assert events[0].step_name == "Stock Fundamentals"
        assert events[0].text == "Query is not safe to execute"


class TestResults:
    def test_rows_prefixed_with_reasoning(self):
        engine = FakeEngine(lambda sql: [{"ticker": "AAPL", "peRatio": 30.1}])
        executor, events = _executor(engine)
        rows = _run(executor.execute(_query("SELECT ticker, peRatio FROM fundamentals_view")))
        assert rows == [{"reasoning": "Find cheap tech"}, {"ticker": "AAPL", "peRatio": 30.1}]
        assert events[0].success is True
        assert events[0].text == "Data retrieved - 1 results"

    def test_identifiers_quoted_before_execution(self):
        engine = FakeEngine()
        executor, _ = _executor(engine)
        _run(executor.execute(_query("SELECT ticker FROM fundamentals_view")))
        assert engine.statements == ['SELECT "ticker" FROM "fundamentals_view"']

    def test_zero_rows_gives_sentinel(self):
        engine = FakeEngine(lambda sql: [])
        executor, events = _executor(engine)
        rows = _run(executor.execute(_query("SELECT ticker FROM fundamentals_view")))
        assert rows == [{"reasoning": "Find cheap tech"}, NO_RESULTS_SENTINEL]
        assert events[0].success is False

    def test_execution_error_becomes_row(self):
        engine = FakeEngine(lambda sql: RuntimeError('column "foo" does not exist'))
        executor, events = _executor(engine)
        rows = _run(executor.execute(_query("SELECT foo FROM fundamentals_view")))
        assert rows == [{
            "reasoning": "Find cheap tech",
            "errorRunningQuery": 'column "foo" does not exist',
        }]
        assert events[0].success is False

    def test_connection_released_after_error(self):
        engine = FakeEngine(lambda sql: RuntimeError("boom"))
        executor, _ = _executor(engine)
        _run(executor.execute(_query("SELECT ticker FROM fundamentals_view")))
        assert engine.open_connections == 0

    def test_non_json_values_stringified(self):
        from decimal import Decimal
        engine = FakeEngine(lambda sql: [{"ticker": "KO", "amount": Decimal("0.51")}])
        executor, _ = _executor(engine)
        rows = _run(executor.execute(_query("SELECT ticker, amount FROM dividenddates_view")))
        assert rows[1] == {"ticker": "KO", "amount": "0.51"}

    def test_span_recorded_on_trace(self):
        trace = TraceContext("test")
        executor = QueryExecutor(FakeEngine(lambda sql: [{"ticker": "A"}]), trace=trace)
        _run(executor.execute(_query("SELECT ticker FROM fundamentals_view")))
        assert [r.name for r in trace.records] == ["sql_stocks"]


class TestExecuteAll:
    def test_merged_in_dispatch_order(self):
        def rows_for(sql):
            if "etf_fundamentals_view" in sql:
                return [{"ticker": "SPY"}]
            return [{"ticker": "AAPL"}]

        executor, _ = _executor(FakeEngine(rows_for))
        rows = _run(executor.execute_all([
            _query("SELECT ticker FROM etf_fundamentals_view", "etf", "ETF Data", "etfs"),
            _query("SELECT ticker FROM fundamentals_view", "stocks", "Stock Fundamentals", "stocks"),
        ]))
        assert rows == [
            {"reasoning": "etfs"}, {"ticker": "SPY"},
            {"reasoning": "stocks"}, {"ticker": "AAPL"},
        ]

    def test_one_failure_keeps_other_results(self):
        def rows_for(sql):
            if "latestnews_view" in sql:
                return RuntimeError("timeout")
            return [{"ticker": "NVDA"}]

        engine = FakeEngine(rows_for)
        executor, _ = _executor(engine)
        rows = _run(executor.execute_all([
            _query("DROP VIEW fundamentals_view", "stocks", "Stock Fundamentals", "bad"),
            _query("SELECT ticker FROM latestnews_view", "news", "Latest News", "news"),
            _query("SELECT ticker FROM realtime_prices_view", "prices", "Asset Prices", "prices"),
        ]))
        assert rows == [
            {"reasoning": "news", "errorRunningQuery": "timeout"},
            {"reasoning": "prices"}, {"ticker": "NVDA"},
        ]
        assert len(engine.statements) == 2
