# =============================================================================
# Ticker Resolver — Instrument Lookup by Name or Ticker
# =============================================================================
#
# Turns the free-text asset names the classifier extracted ("Mercedes",
# "Benz", "MBG.DE") into catalog instruments the query agents can use as
# exact-match hints.
#
# FLOW:
#   1. Short-circuit when there is nothing to look up
#   2. Map topic flags → asset-class codes to search within
#   3. One full-text query against instruments_view: every term is matched
#      as a phrase against both the name and the ticker column
#   4. Map rows to TickerMatch, dropping unknown asset-class codes
#
# DESIGN DECISION: Postgres phrase search over ILIKE.
# `to_tsvector('english', col) @@ phraseto_tsquery('english', term)` gives
# stemming and word-boundary matching ("Apple" matches "Apple Inc." but not
# "Pineapple Corp"), and every term is a bound parameter, so model-produced
# strings never become SQL text.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Literal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncEngine

from finchat.config import settings
from finchat.db.views import instruments_view

if TYPE_CHECKING:
    from finchat.agents.schemas import Classification

logger = logging.getLogger(__name__)

AssetType = Literal["stock", "etf", "currency", "commodity", "index", "crypto"]

ASSET_TYPE_MAP: dict[int, AssetType] = {
    1: "currency",
    2: "commodity",
    4: "index",
    5: "stock",
    6: "etf",
    10: "crypto",
}

ALL_ASSET_CODES = frozenset(ASSET_TYPE_MAP)


@dataclass(frozen=True)
class TickerMatch:
    """A catalog instrument matched from the user's wording."""

    ticker: str
    name: str
    instrument_id: int
    asset_type: AssetType

    def to_dict(self) -> dict:
        data = asdict(self)
        return {
            "ticker": data["ticker"],
            "name": data["name"],
            "instrumentId": data["instrument_id"],
            "assetType": data["asset_type"],
        }


def relevant_asset_codes(classification: Classification) -> set[int]:
    """Asset-class codes worth searching, given the topic flags."""
    codes: set[int] = set()
    c = classification
    if (
        c.is_about_stock_fundamentals
        or c.is_about_news
        or c.is_about_earnings_dates
        or c.is_about_dividend_dates
    ):
        codes.add(5)
    if c.is_about_etfs or c.is_about_dividend_dates:
        codes.add(6)
    if c.is_about_currencies_or_commodities_or_indices:
        codes.update((1, 2, 4))
    if c.is_about_crypto or c.is_about_news:
        codes.add(10)
    if (
        c.user_wants_to_trade_an_asset
        or c.is_about_asset_prices_or_performance
        or c.is_about_investors
    ):
        codes.update(ALL_ASSET_CODES)
    return codes


def _phrase_match(column, term: str):
    return func.to_tsvector("english", column).op("@@")(
        func.phraseto_tsquery("english", term)
    )


def build_lookup_statement(terms: list[str], asset_codes: set[int]):
    """SELECT over instruments_view for the given terms and asset classes."""
    view = instruments_view.c
    stmt = select(view.instrumentId, view.name, view.ticker, view.assetClassId).where(
        view.assetClassId.in_(sorted(asset_codes))
    )
    if terms:
        stmt = stmt.where(
            or_(*[
                or_(_phrase_match(view.name, term), _phrase_match(view.ticker, term))
                for term in terms
            ])
        )
    return stmt.limit(settings.ticker_match_limit)


class TickerResolver:
    """Resolves a Classification's candidate names against the catalog."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def resolve(self, classification: Classification) -> list[TickerMatch]:
        terms = [
            term.strip()
            for term in (
                *classification.possible_asset_names_or_tickers,
                *classification.previous_relevant_tickers,
            )
            if term and term.strip()
        ]
        if not terms and not classification.user_wants_to_trade_an_asset:
            return []

        asset_codes = relevant_asset_codes(classification)
        if not asset_codes:
            logger.info("No asset classes relevant for terms %s; skipping lookup", terms)
            return []

        stmt = build_lookup_statement(terms, asset_codes)
        async with self._engine.connect() as conn:
            result = await conn.execute(stmt)
            rows = result.mappings().all()

        matches = []
        for row in rows:
            asset_type = ASSET_TYPE_MAP.get(row["assetClassId"])
            if asset_type is None:
                continue
            matches.append(TickerMatch(
                ticker=row["ticker"],
                name=row["name"],
                instrument_id=row["instrumentId"],
                asset_type=asset_type,
            ))

        logger.info(
            "Resolved %d instruments for %d terms (asset classes %s)",
            len(matches), len(terms), sorted(asset_codes),
        )
        return matches
