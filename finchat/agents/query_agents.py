# =============================================================================
# Query Agents — One SQL Candidate per Evidence Domain
# =============================================================================
#
# Seven domains, each with a precondition over the Classification and a
# prompt builder. A dispatched agent makes one structured call and returns
# a CandidateQuery; the executor runs it later.
#
# DISPATCH ORDER (also the order evidence rows are merged in):
#   ETF Data → Latest News → Earnings Dates → Stock Fundamentals →
#   Dividend Dates → Popular Investors → Asset Prices
#
# Stock fundamentals are skipped when the question is about investors:
# "which investors hold Apple?" is answered from investor data, and a
# fundamentals query would only add noise.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from finchat.agents.prompts import (
    PromptContext,
    dividends_query_prompt,
    earnings_query_prompt,
    etf_query_prompt,
    investors_query_prompt,
    news_query_prompt,
    prices_query_prompt,
    stocks_query_prompt,
)
from finchat.agents.schemas import CandidateQuerySchema, Classification
from finchat.models.responses import step_start
from finchat.services.llm import LLMProvider
from finchat.services.query_executor import CandidateQuery, EventSink
from finchat.services.structured import generate_object
from finchat.services.tracing import TraceContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryDomain:
    name: str
    step_name: str
    precondition: Callable[[Classification], bool]
    build_prompt: Callable[[PromptContext], str]


QUERY_DOMAINS: tuple[QueryDomain, ...] = (
    QueryDomain("etf", "ETF Data", lambda c: c.is_about_etfs, etf_query_prompt),
    QueryDomain("news", "Latest News", lambda c: c.is_about_news, news_query_prompt),
    QueryDomain(
        "earnings", "Earnings Dates", lambda c: c.is_about_earnings_dates, earnings_query_prompt,
    ),
    QueryDomain(
        "stocks",
        "Stock Fundamentals",
        lambda c: c.is_about_stock_fundamentals and not c.is_about_investors,
        stocks_query_prompt,
    ),
    QueryDomain(
        "dividends", "Dividend Dates", lambda c: c.is_about_dividend_dates, dividends_query_prompt,
    ),
    QueryDomain(
        "investors",
        "Popular Investors",
        lambda c: c.is_about_investors or c.is_about_smart_portfolios,
        investors_query_prompt,
    ),
    QueryDomain(
        "prices",
        "Asset Prices",
        lambda c: c.is_about_asset_prices_or_performance,
        prices_query_prompt,
    ),
)


async def draft_query(
    domain: QueryDomain,
    ctx: PromptContext,
    llm: LLMProvider,
    emit: EventSink | None = None,
    trace: TraceContext | None = None,
) -> CandidateQuery:
    """Ask the model for one SQL candidate for this domain."""
    if emit:
        emit(step_start(domain.step_name))

    draft, _ = await generate_object(
        llm,
        CandidateQuerySchema,
        messages=[{"role": "user", "content": domain.build_prompt(ctx)}],
        trace=trace,
        name=f"query_{domain.name}",
        temperature=0,
    )
    logger.info(
        "%s agent drafted %s", domain.name, "a query" if draft.sql_query else "no query",
    )
    return CandidateQuery(
        reasoning=draft.reasoning,
        number_of_results=draft.number_of_results_specified,
        sql=draft.sql_query,
        domain=domain.name,
        step_name=domain.step_name,
    )
