# =============================================================================
# Integration Tests — Turn Pipeline
# =============================================================================
#
# Whole turns through TurnPipeline with a scripted LLM, a fake evidence
# database and a mocked portfolio fetcher. No network, no real database.
#
# Test groups:
#   1. Price question — prices agent and tool agent only, rows and deltas
#   2. Portfolio question without holdings — analysis over an empty portfolio
#   3. Unsafe SQL — rejected without execution, the answer still streams
#   4. Failures — classification error, synthesis error, turn deadline,
#      client disconnect
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from finchat.agents.classifier import ClassificationError
from finchat.agents.orchestrator import EvidenceDeps
from finchat.agents.pipeline import TurnPipeline, TurnRequest, TurnResult
from finchat.config import settings
from finchat.services.market_data import build_market_data_tools
from finchat.services.ticker_resolver import TickerResolver
from finchat.services.tracing import TraceContext
from tests.fakes import FakeEngine, ScriptedLLM


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


ROUTER = "You are the router of a financial assistant"

ANSWER = {
    "answer": "Apple closed at $201.50 today, up 1.20%.",
    "type": "text",
    "chartType": "None",
    "chartData": [],
    "chatTitle": None,
    "followUpQuestions": [],
    "tickersToDisplay": ["AAPL"],
    "usernamesToDisplay": [],
    "displayPreference": "tickers",
}


def _classification_reply(**flags) -> dict:
    return {
        "reasoning": "test",
        "reasoningInSimpleLanguageAddressedAtUser": "Let me look that up for you",
        **flags,
    }


def _rows_for(sql: str):
    if "to_tsvector" in sql:
        return [{"instrumentId": 1001, "name": "Apple", "ticker": "AAPL", "assetClassId": 5}]
    if '"realtime_prices_view"' in sql:
        return [{"ticker": "AAPL", "price": 201.5, "pricePercentage": 1.2}]
    return []


def _pipeline(llm: ScriptedLLM, engine: FakeEngine | None = None) -> TurnPipeline:
    engine = engine or FakeEngine(_rows_for)
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(return_value=[])
    return TurnPipeline(EvidenceDeps(
        evidence_engine=engine,
        resolver=TickerResolver(engine),
        portfolio_fetcher=fetcher,
        market_tools=build_market_data_tools(MagicMock()),
        llm_for_stage=lambda stage: llm,
    ))


def _turn(pipeline: TurnPipeline, request: TurnRequest) -> tuple[list, TurnResult, TraceContext]:
    """Classify and stream one turn; returns events, result and trace."""
    trace = TraceContext("chat-turn")
    result = TurnResult()

    async def _go():
        classification = await pipeline.classify(request, trace)
        return [event async for event in pipeline.stream(request, classification, result, trace)]

    return _run(_go()), result, trace


def _subtypes(events) -> list[str]:
    return [e.subtype for e in events if e.kind == "status-update"]


# ---------------------------------------------------------------------------
# 1. Price question
# ---------------------------------------------------------------------------


class TestPriceQuestion:
    def _llm(self) -> ScriptedLLM:
        return ScriptedLLM(
            replies=[
                (ROUTER, _classification_reply(
                    isAboutAssetPricesOrPerformance=True, possibleAssetNamesOrTickers=["AAPL"],
                )),
                ("about asset prices and performance", {
                    "reasoning": "Current AAPL price",
                    "sqlQuery": "SELECT ticker, price, pricePercentage FROM realtime_prices_view "
                                "WHERE ticker = 'AAPL'",
                }),
            ],
            tool_reply="AAPL all-time high: $260.10 in the week of 2024-12-23.",
            stream_reply=ANSWER,
        )

    def test_only_prices_and_tool_agent_dispatched(self):
        llm = self._llm()
        _turn(_pipeline(llm), TurnRequest("c1", "What is Apple's price?"))

        kinds = [call["kind"] for call in llm.calls]
        assert kinds.count("complete") == 2
        assert kinds.count("tools") == 1
        assert kinds.count("stream") == 1
        assert llm.calls_for("hedge fund veteran") == []
        assert llm.calls_for("about recent market news") == []
        assert llm.calls_for("about investors people") == []

    def test_tool_agent_gets_price_tools_and_matches(self):
        llm = self._llm()
        _turn(_pipeline(llm), TurnRequest("c1", "What is Apple's price?"))
        tool_call = next(call for call in llm.calls if call["kind"] == "tools")
        assert tool_call["tools"] == [
            "get_single_day_price", "get_all_time_high",
            "get_high_or_low_in_period", "get_performance_in_range",
        ]
        assert '"instrumentId": 1001' in tool_call["haystack"]

    def test_event_order_and_completion(self):
        events, result, _ = _turn(_pipeline(self._llm()), TurnRequest("c1", "What is Apple's price?"))

        subtypes = _subtypes(events)
        assert subtypes[:3] == ["classification", "classification_reasoning", "sql_step"]
        assert subtypes[-1] == "final_step"
        assert events[1].text == "Let me look that up for you"
        assert events[-1].kind == "answer-complete"
        assert events[-1].answer["answer"] == ANSWER["answer"]
        assert result.status == "completed"

    def test_final_prompt_carries_rows_and_tool_data(self):
        llm = self._llm()
        _turn(_pipeline(llm), TurnRequest("c1", "What is Apple's price?"))
        haystack = next(call for call in llm.calls if call["kind"] == "stream")["haystack"]
        assert '"price": 201.5' in haystack
        assert "all-time high: $260.10" in haystack

    def test_record_for_persistence(self):
        request = TurnRequest("c1", "What is Apple's price?")
        _, result, trace = _turn(_pipeline(self._llm()), request)
        record = result.to_record(request, trace, "anthropic/test")
        assert record.status == "completed"
        assert record.answer_text == ANSWER["answer"]
        assert record.evidence_rows == 1
        assert record.ticker_matches == 1
        assert record.classification_flags["isAboutAssetPricesOrPerformance"] is True
        assert record.input_tokens > 0


# ---------------------------------------------------------------------------
# 2. Portfolio question without holdings
# ---------------------------------------------------------------------------


class TestEmptyPortfolio:
    def test_analysis_runs_over_empty_portfolio(self):
        llm = ScriptedLLM(
            replies=[
                (ROUTER, _classification_reply(isAboutUserPortfolio=True)),
                ("hedge fund veteran", {"reasoning": "r", "content": "Your portfolio is empty."}),
            ],
            stream_reply=dict(ANSWER, answer="You have no open positions yet."),
        )
        events, result, _ = _turn(_pipeline(llm), TurnRequest("c2", "How is my portfolio doing?"))

        analysis_call = llm.calls_for("hedge fund veteran")[0]
        assert "Portfolio positions (weights in percent):\n[]" in analysis_call["haystack"]
        portfolio_finish = [
            e for e in events if e.step_name == "Portfolio Data" and e.subtype == "step_finish"
        ]
        assert portfolio_finish[0].success is False
        assert result.bundle.portfolio_analysis == "Your portfolio is empty."
        assert result.status == "completed"


# ---------------------------------------------------------------------------
# 3. Unsafe SQL
# ---------------------------------------------------------------------------


class TestUnsafeQuery:
    def test_delete_rejected_and_answer_still_streams(self):
        llm = ScriptedLLM(
            replies=[
                (ROUTER, _classification_reply(isAboutStockFundamentals=True)),
                ("about stock fundamentals", {
                    "reasoning": "oops", "sqlQuery": "DELETE FROM fundamentals_view",
                }),
            ],
            stream_reply=dict(ANSWER, answer="I could not find that data."),
        )
        engine = FakeEngine(_rows_for)
        events, result, _ = _turn(_pipeline(llm, engine), TurnRequest("c3", "Cheapest tech stocks?"))

        assert not any("DELETE" in sql for sql in engine.statements)
        rejected = [e for e in events if e.text == "Query is not safe to execute"]
        assert rejected[0].success is False
        assert result.bundle.evidence.kind == "ticker_fallback"
        assert events[-1].kind == "answer-complete"
        assert result.status == "completed"


# ---------------------------------------------------------------------------
# 4. Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_classification_failure_raises(self):
        llm = ScriptedLLM(replies=[(ROUTER, "not json")])
        pipeline = _pipeline(llm)
        with pytest.raises(ClassificationError):
            _run(pipeline.classify(TurnRequest("c4", "hi")))

    def test_unclassified_is_tagged(self):
        llm = ScriptedLLM(replies=[(ROUTER, _classification_reply())])
        trace = TraceContext("chat-turn")
        classification = _run(_pipeline(llm).classify(TurnRequest("c4", "hello"), trace))
        assert classification.is_unclassified
        assert "unclassified" in trace.tags

    def test_synthesis_failure_ends_with_error_event(self):
        llm = ScriptedLLM(
            replies=[(ROUTER, _classification_reply())],
            stream_reply=ANSWER,
            stream_error=ConnectionError("reset by peer"),
        )
        events, result, _ = _turn(_pipeline(llm), TurnRequest("c5", "hello"))

        assert events[-1].kind == "error"
        assert events[-1].code == "synthesis_failed"
        assert [e.kind for e in events].count("error") == 1
        assert result.status == "error"
        assert result.to_record(TurnRequest("c5", "hello"), TraceContext("t"), None).answer_text is None

    def test_turn_deadline(self):
        class SlowLLM(ScriptedLLM):
            async def stream(self, messages, system=None, temperature=None, max_tokens=None):
                await asyncio.sleep(5)
                yield "{}"

        llm = SlowLLM(replies=[(ROUTER, _classification_reply())])
        with patch.object(settings, "turn_timeout_seconds", 0.2):
            events, result, _ = _turn(_pipeline(llm), TurnRequest("c6", "hello"))

        assert events[-1].kind == "error"
        assert events[-1].code == "turn_timeout"
        assert result.status == "error"

    def test_client_disconnect_cancels_turn(self):
        llm = ScriptedLLM(replies=[(ROUTER, _classification_reply())], stream_reply=ANSWER)
        pipeline = _pipeline(llm)
        request = TurnRequest("c7", "hello")
        result = TurnResult()

        async def _go():
            trace = TraceContext("chat-turn")
            classification = await pipeline.classify(request, trace)
            agen = pipeline.stream(request, classification, result, trace)
            first = await agen.__anext__()
            await agen.aclose()
            return first

        first = _run(_go())
        assert first.subtype == "classification"
        assert result.status == "cancelled"

    def test_classify_uses_classification_stage(self):
        stages = []
        llm = ScriptedLLM(replies=[(ROUTER, _classification_reply())])
        pipeline = _pipeline(llm)
        pipeline._deps.llm_for_stage = lambda stage: stages.append(stage) or llm
        _run(pipeline.classify(TurnRequest("c8", "hello")))
        assert stages == ["classification"]
