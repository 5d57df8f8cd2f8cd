# =============================================================================
# Unit Tests — Ticker Resolver
# =============================================================================
#
# Test groups:
#   1. relevant_asset_codes — topic flags → asset-class codes
#   2. resolve — short-circuit, row mapping, unknown codes dropped
# =============================================================================

from __future__ import annotations

import asyncio

from finchat.agents.schemas import Classification
from finchat.services.ticker_resolver import (
    ALL_ASSET_CODES,
    TickerMatch,
    TickerResolver,
    build_lookup_statement,
    relevant_asset_codes,
)
from tests.fakes import FakeEngine


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _classification(**flags) -> Classification:
    return Classification(
        reasoning="test",
        reasoning_in_simple_language_addressed_at_user="test",
        **flags,
    )


class TestRelevantAssetCodes:
    def test_stock_fundamentals_is_stocks(self):
        assert relevant_asset_codes(_classification(is_about_stock_fundamentals=True)) == {5}

    def test_dividend_dates_include_stocks_and_etfs(self):
        assert relevant_asset_codes(_classification(is_about_dividend_dates=True)) == {5, 6}

    def test_news_includes_crypto(self):
        assert relevant_asset_codes(_classification(is_about_news=True)) == {5, 10}

    def test_macro_assets(self):
        codes = relevant_asset_codes(
            _classification(is_about_currencies_or_commodities_or_indices=True)
        )
        assert codes == {1, 2, 4}

    def test_prices_include_everything(self):
        codes = relevant_asset_codes(_classification(is_about_asset_prices_or_performance=True))
        assert codes == set(ALL_ASSET_CODES)

    def test_no_flags_no_codes(self):
        assert relevant_asset_codes(_classification()) == set()


class TestResolve:
    def test_empty_terms_without_trade_intent_short_circuits(self):
        engine = FakeEngine()
        classification = _classification(
            is_about_stock_fundamentals=True, is_about_news=True, is_about_investors=True,
        )
        assert _run(TickerResolver(engine).resolve(classification)) == []
        assert engine.statements == []

    def test_blank_terms_count_as_empty(self):
        engine = FakeEngine()
        classification = _classification(
            is_about_stock_fundamentals=True, possible_asset_names_or_tickers=("  ",),
        )
        assert _run(TickerResolver(engine).resolve(classification)) == []
        assert engine.statements == []

    def test_maps_rows_and_drops_unknown_codes(self):
        engine = FakeEngine(lambda sql: [
            {"instrumentId": 1001, "name": "Apple", "ticker": "AAPL", "assetClassId": 5},
            {"instrumentId": 5000, "name": "Apple Fund", "ticker": "APLF", "assetClassId": 99},
        ])
        classification = _classification(
            is_about_asset_prices_or_performance=True,
            possible_asset_names_or_tickers=("Apple",),
        )
        matches = _run(TickerResolver(engine).resolve(classification))
        assert matches == [TickerMatch("AAPL", "Apple", 1001, "stock")]
        assert len(engine.statements) == 1
        assert "instruments_view" in engine.statements[0]

    def test_trade_intent_without_terms_still_queries(self):
        engine = FakeEngine()
        classification = _classification(user_wants_to_trade_an_asset=True)
        _run(TickerResolver(engine).resolve(classification))
        assert len(engine.statements) == 1

    def test_previous_tickers_are_searched(self):
        engine = FakeEngine()
        classification = _classification(
            is_about_dividend_dates=True, previous_relevant_tickers=("KO",),
        )
        _run(TickerResolver(engine).resolve(classification))
        assert len(engine.statements) == 1


class TestLookupStatement:
    def test_uses_full_text_match_and_limit(self):
        sql = str(build_lookup_statement(["Apple", "MSFT"], {5, 6}))
        assert "to_tsvector" in sql
        assert "phraseto_tsquery" in sql
        assert "LIMIT" in sql

    def test_to_dict_uses_wire_names(self):
        match = TickerMatch("AAPL", "Apple", 1001, "stock")
        assert match.to_dict() == {
            "ticker": "AAPL", "name": "Apple", "instrumentId": 1001, "assetType": "stock",
        }
