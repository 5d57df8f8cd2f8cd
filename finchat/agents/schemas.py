# =============================================================================
# Agent Schemas — Model-Facing Pydantic Models & Evidence Types
# =============================================================================
#
# These are the shapes the model is asked to produce (via
# services/structured.py) plus the evidence types the orchestrator hands to
# the synthesizer.
#
# DESIGN DECISION: camelCase on the wire, snake_case in Python.
# The model sees and emits camelCase keys (the same names the chat UI
# consumes, e.g. "chartData", "followUpQuestions"); Python code reads
# snake_case attributes. `alias_generator=to_camel` handles the mapping;
# the two acronym fields (ETFs, CEOs) carry explicit aliases.
#
# DESIGN DECISION: Classification is frozen.
# It is produced once per turn and read by every later stage. Freezing it
# (and storing its lists as tuples) makes that a property of the type rather
# than a convention.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from finchat.services.ticker_resolver import TickerMatch


# ---------------------------------------------------------------------------
# Classification (first model call)
# ---------------------------------------------------------------------------


class Classification(BaseModel):
    """Topic flags and candidate instruments for one user message."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    reasoning: str
    reasoning_in_simple_language_addressed_at_user: str = Field(
        description=(
            "Reasoning but explained to the user, with very simple language "
            "and not mentioning property names."
        ),
    )

    is_about_user_portfolio: bool = False
    is_about_stock_fundamentals: bool = False
    is_stock_industry_relevant: bool = False
    is_about_etfs: bool = Field(default=False, alias="isAboutETFs")
    is_about_currencies_or_commodities_or_indices: bool = False
    is_about_crypto: bool = False
    is_about_news: bool = False
    is_about_earnings_dates: bool = False
    is_about_dividend_dates: bool = False
    is_about_investors: bool = False
    is_about_smart_portfolios: bool = False
    is_about_asset_prices_or_performance: bool = Field(
        default=False,
        description="Is about an asset's price or historical price performance",
    )
    user_wants_to_trade_an_asset: bool = False
    is_about_earnings_calls_summaries_or_revenue_segmentation: bool = False
    is_about_corporate_guidance_or_strategic_outlook: bool = False
    is_about_important_ceos: bool = Field(default=False, alias="isAboutImportantCEOs")

    possible_asset_names_or_tickers: tuple[str, ...] = ()
    previous_relevant_tickers: tuple[str, ...] = ()

    def topic_flags(self) -> dict[str, bool]:
        """All boolean flags keyed by their wire name."""
        return {
            info.alias or name: getattr(self, name)
            for name, info in type(self).model_fields.items()
            if info.annotation is bool
        }

    @property
    def is_unclassified(self) -> bool:
        """True when no topic flag except trade intent is set."""
        return not any(
            value
            for key, value in self.topic_flags().items()
            if key != "userWantsToTradeAnAsset"
        )


# ---------------------------------------------------------------------------
# Per-domain SQL candidate
# ---------------------------------------------------------------------------


class CandidateQuerySchema(BaseModel):
    """What a query agent returns: its reasoning and at most one query."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    reasoning: str
    number_of_results_specified: int | None = None
    sql_query: str | None = None


# ---------------------------------------------------------------------------
# Portfolio analysis
# ---------------------------------------------------------------------------


class PortfolioAnalysis(BaseModel):
    reasoning: str
    content: str


# ---------------------------------------------------------------------------
# Final answer (streamed)
# ---------------------------------------------------------------------------


class ChartPoint(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ticker: str = Field(description="Instrument Ticker or Investor username")
    chart_x_value: str
    chart_x_label: str
    chart_y_value: float
    chart_y_label: str


class FinalAnswer(BaseModel):
    """
    The terminal structured answer of a turn.

    Streamed to the client as a sequence of partial fragments, then once
    more in full after validation.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    answer: str
    type: Literal["text", "list", "chart"] = "text"
    chart_type: Literal["BarChart", "None"] = "None"
    chart_data: list[ChartPoint] = Field(default_factory=list)
    chat_title: str | None = None
    follow_up_questions: list[str] = Field(
        default_factory=list,
        description=(
            "up to 3 related follow up questions in plain text that the user "
            "can ask to get more information."
        ),
    )
    tickers_to_display: list[str] = Field(
        default_factory=list,
        description="identifiers of stocks, ETFs, commodities, indices, cryptos, or currencies",
    )
    usernames_to_display: list[str] = Field(default_factory=list)
    display_preference: Literal["tickers", "usernames", "smartPortfolios", "none"] = Field(
        default="none",
        description="Determines whether to display tickers or usernames based on question relevance",
    )

    @classmethod
    def wire_keys(cls) -> set[str]:
        return {info.alias or name for name, info in cls.model_fields.items()}


# ---------------------------------------------------------------------------
# Evidence handed to the synthesizer
# ---------------------------------------------------------------------------
# Query execution normally yields rows. When it yields none at all, the
# resolved ticker matches are passed instead so the synthesizer still has
# something concrete. The two shapes stay distinct types so the prompt can
# say which one it is looking at.
# ---------------------------------------------------------------------------

# A row is a column→value mapping, a leading {"reasoning": ...} marker, an
# {"reasoning", "errorRunningQuery"} failure note, or the zero-results
# sentinel string.
ComparisonRow = dict[str, Any] | str


@dataclass(frozen=True)
class QueryRows:
    rows: list[ComparisonRow]
    kind: Literal["query_rows"] = "query_rows"

    def to_prompt_data(self) -> list[ComparisonRow]:
        return self.rows


@dataclass(frozen=True)
class TickerFallback:
    matches: list[TickerMatch] = field(default_factory=list)
    kind: Literal["ticker_fallback"] = "ticker_fallback"

    def to_prompt_data(self) -> list[dict[str, Any]]:
        return [match.to_dict() for match in self.matches]


Evidence = QueryRows | TickerFallback
