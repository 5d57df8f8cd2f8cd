# =============================================================================
# Unit Tests — Partial-Object Reducer
# =============================================================================
#
# Test groups:
#   1. diff_partial — string suffixes, open last key, scalars set once
#   2. Contradictions — shrinking or changed fields raise ValueError
#   3. merge_partial — folding every delta reproduces the final object
# =============================================================================

from __future__ import annotations

import pytest

from finchat.agents.partial import diff_partial, merge_partial


class TestDiffPartial:
    def test_first_snapshot_holds_back_open_item(self):
        delta = diff_partial({}, {"title": "Apple", "tickers": ["AAPL", "MS"]})
        assert delta == {"title": "Apple", "tickers": ["AAPL"]}

    def test_string_grows_by_suffix(self):
        delta = diff_partial({"answer": "Apple is"}, {"answer": "Apple is up 3%"})
        assert delta == {"answer": " up 3%"}

    def test_unchanged_string_gives_nothing(self):
        assert diff_partial({"answer": "Hi"}, {"answer": "Hi"}) == {}

    def test_open_list_holds_back_last_item(self):
        assert diff_partial({}, {"answer": "x", "tickers": ["AA"]}) == {"answer": "x"}
        emitted = {"answer": "x", "tickers": ["AAPL"]}
        delta = diff_partial(emitted, {"answer": "x", "tickers": ["AAPL", "MSFT", "N"]})
        assert delta == {"tickers": ["MSFT"]}

    def test_closed_list_sends_all_new_items(self):
        emitted = {"tickers": ["AAPL"]}
        snapshot = {"tickers": ["AAPL", "MSFT"], "chatTitle": "T"}
        assert diff_partial(emitted, snapshot) == {"tickers": ["MSFT"], "chatTitle": "T"}

    def test_open_scalar_held_back(self):
        assert diff_partial({}, {"answer": "x", "count": 12}) == {"answer": "x"}
        assert diff_partial({"answer": "x"}, {"answer": "x", "count": 1234}, final=True) == {"count": 1234}

    def test_closed_empty_list_is_announced(self):
        delta = diff_partial({}, {"tickers": [], "answer": ""})
        assert delta == {"tickers": [], "answer": ""}

    def test_final_releases_open_key(self):
        delta = diff_partial({"tickers": ["AAPL"]}, {"tickers": ["AAPL", "MSFT"]}, final=True)
        assert delta == {"tickers": ["MSFT"]}

    def test_scalar_repeated_is_not_resent(self):
        emitted = {"isAboutPortfolio": True}
        snapshot = {"isAboutPortfolio": True, "answer": "ok"}
        assert diff_partial(emitted, snapshot) == {"answer": "ok"}


class TestContradictions:
    def test_string_rewritten(self):
        with pytest.raises(ValueError):
            diff_partial({"answer": "Apple"}, {"answer": "Amazon"})

    def test_list_prefix_changed(self):
        with pytest.raises(ValueError):
            diff_partial({"tickers": ["AAPL"]}, {"tickers": ["MSFT", "AAPL"], "x": 1})

    def test_scalar_changed(self):
        with pytest.raises(ValueError):
            diff_partial({"flag": True}, {"flag": False, "answer": ""})

    def test_merge_rejects_overwrite(self):
        with pytest.raises(ValueError):
            merge_partial({"flag": True}, {"flag": False})


class TestMergePartial:
    def test_fold_reproduces_final(self):
        snapshots = [
            {"chatTitle": "Tech"},
            {"chatTitle": "Tech stocks", "answer": "Here"},
            {"chatTitle": "Tech stocks", "answer": "Here are", "tickers": ["AA"]},
            {"chatTitle": "Tech stocks", "answer": "Here are", "tickers": ["AAPL", "MS"]},
            {"chatTitle": "Tech stocks", "answer": "Here are", "tickers": ["AAPL", "MSFT"], "count": 2},
        ]
        held: dict = {}
        for snapshot in snapshots:
            held = merge_partial(held, diff_partial(held, snapshot))
        held = merge_partial(held, diff_partial(held, snapshots[-1], final=True))
        assert held == snapshots[-1]

    def test_previous_not_mutated(self):
        previous = {"tickers": ["AAPL"]}
        merged = merge_partial(previous, {"tickers": ["MSFT"]})
        assert previous == {"tickers": ["AAPL"]}
        assert merged == {"tickers": ["AAPL", "MSFT"]}
