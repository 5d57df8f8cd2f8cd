# =============================================================================
# Unit Tests — Structured Generation
# =============================================================================
#
# Test groups:
#   1. extract_json / parse_partial — fences, prose, truncated documents
#   2. generate_object — validation, errors, trace accounting
#   3. stream_object — growing snapshots, then the validated object
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from finchat.agents.schemas import CandidateQuerySchema, PortfolioAnalysis
from finchat.services.structured import (
    StructuredOutputError,
    extract_json,
    generate_object,
    parse_partial,
    stream_object,
)
from finchat.services.tracing import TraceContext
from tests.fakes import ScriptedLLM


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class TestParsing:
    def test_extract_from_fenced_reply(self):
        text = 'Here you go:\n```json\n{"reasoning": "r", "content": "c"}\n```'
        assert extract_json(text) == '{"reasoning": "r", "content": "c"}'

    def test_extract_without_object(self):
        assert extract_json("  no json here ") == "no json here"

    def test_partial_before_object_starts(self):
        assert parse_partial("Sure, ") is None

    def test_partial_drops_open_strings(self):
        assert parse_partial('{"reasoning": "done", "content": "half') == {"reasoning": "done"}

    def test_partial_keeps_stream_fields(self):
        snapshot = parse_partial('{"reasoning": "done", "content": "half', stream_fields=("content",))
        assert snapshot == {"reasoning": "done", "content": "half"}

    def test_partial_list(self):
        snapshot = parse_partial('{"tickers": ["AAPL", "MSFT", "NV')
        assert snapshot == {"tickers": ["AAPL", "MSFT"]}


class TestGenerateObject:
    def test_validates_camel_case_reply(self):
        llm = ScriptedLLM(replies=[("", {"reasoning": "r", "numberOfResultsSpecified": 5, "sqlQuery": "SELECT 1"})])
        draft, response = _run(generate_object(
            llm, CandidateQuerySchema, messages=[{"role": "user", "content": "q"}],
        ))
        assert draft.number_of_results_specified == 5
        assert draft.sql_query == "SELECT 1"
        assert response.model == "scripted"

    def test_schema_sent_in_system_prompt(self):
        llm = ScriptedLLM(replies=[("", {"reasoning": "r", "content": "c"})])
        _run(generate_object(llm, PortfolioAnalysis, messages=[{"role": "user", "content": "q"}], system="Analyse."))
        haystack = llm.calls[0]["haystack"]
        assert haystack.startswith("Analyse.")
        assert "PortfolioAnalysis" in haystack

    def test_invalid_reply_raises(self):
        llm = ScriptedLLM(replies=[("", {"reasoning": "missing content"})])
        with pytest.raises(StructuredOutputError) as exc_info:
            _run(generate_object(llm, PortfolioAnalysis, messages=[{"role": "user", "content": "q"}]))
        assert exc_info.value.schema_name == "PortfolioAnalysis"
        assert "missing content" in exc_info.value.raw

    def test_transport_error_propagates(self):
        llm = ScriptedLLM(replies=[("", ConnectionError("refused"))])
        with pytest.raises(ConnectionError):
            _run(generate_object(llm, PortfolioAnalysis, messages=[{"role": "user", "content": "q"}]))

    def test_generation_recorded_with_usage(self):
        trace = TraceContext("test")
        llm = ScriptedLLM(replies=[("", {"reasoning": "r", "content": "c"})])
        _run(generate_object(
            llm, PortfolioAnalysis, messages=[{"role": "user", "content": "q"}], trace=trace, name="analysis",
        ))
        assert [r.name for r in trace.records] == ["analysis"]
        assert trace.usage.input_tokens == 10
        assert trace.usage.output_tokens == 5


class TestStreamObject:
    def _collect(self, llm):
        async def _drain():
            return [item async for item in stream_object(
                llm, PortfolioAnalysis, messages=[{"role": "user", "content": "q"}], stream_fields=("content",),
            )]
        return _run(_drain())

    def test_snapshots_then_model(self):
        llm = ScriptedLLM(stream_reply={"reasoning": "r", "content": "A long analysis of the portfolio."})
        items = self._collect(llm)

        assert isinstance(items[-1], PortfolioAnalysis)
        snapshots = items[:-1]
        assert all(isinstance(s, dict) for s in snapshots)
        contents = [s["content"] for s in snapshots if "content" in s]
        assert len(contents) > 1
        assert all(b.startswith(a) for a, b in zip(contents, contents[1:]))

    def test_no_duplicate_snapshots(self):
        items = self._collect(ScriptedLLM(stream_reply={"reasoning": "r", "content": "c"}))
        snapshots = items[:-1]
        assert all(a != b for a, b in zip(snapshots, snapshots[1:]))

    def test_invalid_final_reply_raises(self):
        with pytest.raises(StructuredOutputError):
            self._collect(ScriptedLLM(stream_reply={"reasoning": "no content"}))
