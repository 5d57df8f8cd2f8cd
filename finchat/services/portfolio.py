# =============================================================================
# Portfolio Fetcher — Brokerage Holdings Enriched with Catalog Metadata
# =============================================================================
#
# Fetches a user's public portfolio summary from the brokerage API and
# joins it with the evidence views so the portfolio-analysis agent sees
# sectors, valuations and investor stats instead of bare instrument ids.
#
# FLOW:
#   1. GET /API/User/V1/{username}/PortfolioSummary
#   2. No "positions" key → private portfolio → []. An empty list still
#      goes on, since copy trades live under "socialTrades"
#   3. Four lookups run concurrently against the read replica:
#        fundamentals_view, instruments_view, etf_fundamentals_view
#        (by instrumentId) and popular_investors_fundamentals
#        (by the usernames the user copies)
#   4. Merge: each direct position takes the first of fundamentals /
#      instruments / ETF data that knows it; each copy trade takes the
#      copied investor's stats
#   5. Weight = valuePctUnrealized; keep weight > minimum, sort descending,
#      cap the count
#
# DESIGN DECISION: Failures propagate.
# BrokerageError (HTTP) and database errors leave this module; the
# orchestrator owns the "degrade to an empty portfolio" decision and logs it.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine

from finchat.config import settings
from finchat.db.views import (
    etf_fundamentals_view,
    fundamentals_view,
    instruments_view,
    popular_investors_fundamentals,
)

logger = logging.getLogger(__name__)


class BrokerageError(Exception):
    """The brokerage API could not be reached or answered with an error."""


# ---------------------------------------------------------------------------
# Brokerage API Client
# ---------------------------------------------------------------------------


class BrokerageClient:
    """Thin async client for the brokerage's portfolio-summary endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url or settings.brokerage_api_base_url).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.brokerage_api_key
        self._timeout = timeout or settings.http_timeout_seconds

    async def portfolio_summary(self, username: str) -> dict[str, Any]:
        url = f"{self._base_url}/API/User/V1/{username}/PortfolioSummary"
        headers = {"Ocp-Apim-Subscription-Key": self._api_key}
        start = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self._timeout, headers=headers) as client:
                response = await client.get(url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise BrokerageError(f"Portfolio summary for '{username}' failed: {e}") from e

        logger.info(
            "Brokerage portfolio fetch took %dms", int((time.monotonic() - start) * 1000),
        )
        if not isinstance(data, dict):
            raise BrokerageError("Portfolio summary is not a JSON object")
        return data


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PortfolioPosition:
    """
    One holding, either a direct instrument position or a copied investor.

    For copy trades `ticker` is the copied investor's username.
    `details` keeps the full merged record for the analysis prompt.
    """

    ticker: str
    name: str | None
    sector: str | None
    industry: str | None
    country: str | None
    weight: float
    is_copy_trade: bool = False
    details: dict[str, Any] = field(default_factory=dict, compare=False)

    def to_prompt_dict(self) -> dict[str, Any]:
        return {**self.details, "portfolioWeight": self.weight}


_FUNDAMENTALS_COLUMNS = (
    "instrumentId", "ticker", "name", "sector", "industry", "countryCode",
    "marketCapUSD", "peRatio", "forwardAnnualDividendYield", "popularityRankingLast7d",
)
_INSTRUMENT_COLUMNS = ("instrumentId", "ticker", "assetClassId", "name", "popularityUniques7Day")
_ETF_COLUMNS = (
    "instrumentId", "ticker", "name", "divYield", "segment", "return1M", "return1Y",
    "top10HoldingPct", "expenseRatio", "assetClass", "mainRegion", "mainRegionPct",
    "mainSector", "mainSectorPct", "country",
)
_INVESTOR_COLUMNS = (
    "userName", "copiers", "riskScore", "tradesPerWeek", "fullname",
    "oneWeekPerformance", "oneMonthPerformance", "sixMonthsPerformance",
    "oneYearPerformance", "yearToDatePerformance",
    "topHeldSector", "topHeldSectorPct", "secondTopHeldSector", "secondTopHeldSectorPct",
    "biggestHeldPositionPct", "secondBiggestHeldPositionPct",
    "topHeldAssetType", "topHeldAssetTypePct", "secondTopHeldAssetType",
    "secondTopHeldAssetTypePct", "topHeldCountry", "topHeldCountryPct",
    "secondTopHeldCountry", "secondTopHeldCountryPct", "divYield", "cashPct",
    "numOfPositions", "numberOfUniqueAssetTypesHeld", "numberOfUniqueCountriesHeld",
    "biggestHeldPositionTicker", "secondBiggestHeldPositionTicker",
)


def _select_in(table, columns: tuple[str, ...], key: str, values: list):
    return select(*(table.c[name] for name in columns)).where(table.c[key].in_(values))


def merge_portfolio(
    summary: dict[str, Any],
    fundamentals: list[dict[str, Any]],
    instruments: list[dict[str, Any]],
    investors: list[dict[str, Any]],
    etfs: list[dict[str, Any]],
    min_weight: float | None = None,
    max_positions: int | None = None,
) -> list[PortfolioPosition]:
    """
    Join the brokerage summary with catalog rows.

    Pure function: the first matching source wins per position (stock
    fundamentals, then the instrument catalog, then ETF fundamentals).
    """
    min_weight = settings.portfolio_min_weight if min_weight is None else min_weight
    max_positions = max_positions or settings.portfolio_max_positions

    by_id = [
        {row["instrumentId"]: row for row in rows}
        for rows in (fundamentals, instruments, etfs)
    ]
    investors_by_name = {row["userName"]: row for row in investors}

    positions: list[PortfolioPosition] = []
    for position in summary.get("positions") or []:
        instrument_id = position.get("instrumentId")
        catalog = next((lookup[instrument_id] for lookup in by_id if instrument_id in lookup), {})
        merged = {**position, **catalog}
        weight = position.get("valuePctUnrealized")
        if weight is None:
            continue
        positions.append(PortfolioPosition(
            ticker=merged.get("ticker") or str(instrument_id),
            name=merged.get("name"),
            sector=merged.get("sector") or merged.get("mainSector"),
            industry=merged.get("industry") or merged.get("segment"),
            country=merged.get("countryCode") or merged.get("country"),
            weight=float(weight),
            details=merged,
        ))

    for trade in summary.get("socialTrades") or []:
        username = trade.get("parentUsername")
        merged = {**trade, **investors_by_name.get(username, {})}
        weight = trade.get("valuePctUnrealized")
        if not username or weight is None:
            continue
        positions.append(PortfolioPosition(
            ticker=username,
            name=merged.get("fullname"),
            sector=merged.get("topHeldSector"),
            industry=None,
            country=merged.get("topHeldCountry"),
            weight=float(weight),
            is_copy_trade=True,
            details=merged,
        ))

    kept = [p for p in positions if p.weight > min_weight]
    kept.sort(key=lambda p: p.weight, reverse=True)
    return kept[:max_positions]


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class PortfolioFetcher:
    """Fetches and enriches a user's holdings."""

    def __init__(self, engine: AsyncEngine, client: BrokerageClient | None = None) -> None:
        self._engine = engine
        self._client = client or BrokerageClient()

    async def _rows(self, stmt) -> list[dict[str, Any]]:
        async with self._engine.connect() as conn:
            result = await conn.execute(stmt)
            return [dict(row) for row in result.mappings().all()]

    async def fetch(self, username: str) -> list[PortfolioPosition]:
        summary = await self._client.portfolio_summary(username)
        if summary.get("positions") is None:
            logger.info("Portfolio of '%s' is private", username)
            return []

        instrument_ids = [p["instrumentId"] for p in summary["positions"] if "instrumentId" in p]
        copied = [
            t["parentUsername"] for t in summary.get("socialTrades") or [] if t.get("parentUsername")
        ]

        start = time.monotonic()
        fundamentals, instruments, investors, etfs = await asyncio.gather(
            self._rows(_select_in(fundamentals_view, _FUNDAMENTALS_COLUMNS, "instrumentId", instrument_ids)),
            self._rows(_select_in(instruments_view, _INSTRUMENT_COLUMNS, "instrumentId", instrument_ids)),
            self._rows(_select_in(popular_investors_fundamentals, _INVESTOR_COLUMNS, "userName", copied)),
            self._rows(_select_in(etf_fundamentals_view, _ETF_COLUMNS, "instrumentId", instrument_ids)),
        )
        logger.info("Portfolio enrichment queries took %dms", int((time.monotonic() - start) * 1000))

        positions = merge_portfolio(summary, fundamentals, instruments, investors, etfs)
        logger.info(
            "Portfolio of '%s': %d positions kept of %d",
            username, len(positions),
            len(summary["positions"]) + len(summary.get("socialTrades") or []),
        )
        return positions
