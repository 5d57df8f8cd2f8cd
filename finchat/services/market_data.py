# =============================================================================
# Market Data — Candle Client & Price Tools for the Tool-Calling Agent
# =============================================================================
#
# The auxiliary-data agent answers price questions the evidence views
# cannot ("what was the all-time high of NVDA?", "how did gold do between
# March and June?") by calling these tools.
#
# TOOLS:
#   get_single_day_price          — OHLC for a date, or the closest earlier
#                                   trading day within 3 days
#   get_all_time_high             — max High over 1000 weekly candles
#   get_high_or_low_in_period     — max High / min Low between two dates
#   get_performance_in_range      — % change between the closest trading
#                                   days to two dates
#
# DESIGN DECISION: Pure functions over fetched candles.
# The HTTP client only fetches and parses; every calculation is a pure
# function of a candle list (and "today"), so the tool logic is testable
# without a network.
#
# Candle count for daily tools: min(days between today and the earliest
# date + 5, 1000). The buffer covers weekends and holidays.
# =============================================================================

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from finchat.config import settings
from finchat.services.llm import Tool

logger = logging.getLogger(__name__)

Granularity = Literal["OneDay", "OneWeek"]

MAX_CANDLES = 1000
CANDLE_BUFFER_DAYS = 5
LOOKBACK_DAYS = 3


class MarketDataError(Exception):
    """Candles could not be fetched or parsed."""


class Candle(BaseModel):
    from_date: str = Field(alias="FromDate")
    open: float = Field(alias="Open")
    high: float = Field(alias="High")
    low: float = Field(alias="Low")
    close: float = Field(alias="Close")
    volume: float | None = Field(default=None, alias="Volume")

    @property
    def day(self) -> date:
        return date.fromisoformat(self.from_date[:10])

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# HTTP Client
# ---------------------------------------------------------------------------


class MarketDataClient:
    """Fetches ascending OHLCV candles by instrument id."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url or settings.market_data_base_url).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.brokerage_api_key
        self._timeout = timeout or settings.http_timeout_seconds

    async def candles(self, instrument_id: int, granularity: Granularity, count: int) -> list[Candle]:
        url = f"{self._base_url}/sapi/candles/candles/asc.json/{granularity}/{count}/{instrument_id}"
        headers = {"Ocp-Apim-Subscription-Key": self._api_key}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, headers=headers) as client:
                response = await client.get(url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise MarketDataError(f"Candles for instrument {instrument_id} failed: {e}") from e

        return parse_candles(data)


def parse_candles(data: Any) -> list[Candle]:
    """Extract Candles[0].Candles; missing keys mean no data."""
    try:
        raw = data["Candles"][0]["Candles"]
    except (KeyError, IndexError, TypeError):
        return []
    return [Candle.model_validate(item) for item in raw or []]


# ---------------------------------------------------------------------------
# Pure Calculations
# ---------------------------------------------------------------------------


def _to_date(value: str) -> date:
    return date.fromisoformat(value[:10])


def candle_count_since(start: str, today: date | None = None) -> int:
    today = today or datetime.now(timezone.utc).date()
    days = abs((today - _to_date(start)).days)
    return min(days + CANDLE_BUFFER_DAYS, MAX_CANDLES)


def closest_trading_day(
    candles: list[Candle],
    target: str,
    lookback_days: int = LOOKBACK_DAYS,
) -> Candle | None:
    """Latest candle on or up to `lookback_days` before the target date."""
    target_day = _to_date(target)
    earliest = target_day - timedelta(days=lookback_days)
    window = [c for c in candles if earliest <= c.day <= target_day]
    if not window:
        return None
    return max(window, key=lambda c: c.from_date)


def single_day_price(candles: list[Candle], target: str) -> dict[str, Any] | None:
    target_day = _to_date(target)
    exact = next((c for c in candles if c.day == target_day), None)
    candle = exact or closest_trading_day(candles, target)
    return candle.to_dict() if candle else None


def all_time_high(candles: list[Candle]) -> dict[str, Any] | None:
    if not candles:
        return None
    best = candles[0]
    for candle in candles:
        if candle.high > best.high:
            best = candle
    end = datetime.fromisoformat(best.from_date.replace("Z", "+00:00"))
    start = end - timedelta(days=6)
    return {
        "allTimeHigh": best.high,
        "dateRange": {"start": start.isoformat(), "end": end.isoformat()},
    }


def high_or_low_in_period(
    candles: list[Candle],
    start: str,
    end: str,
    direction: Literal["high", "low"],
) -> dict[str, Any] | None:
    start_day, end_day = _to_date(start), _to_date(end)
    period = [c for c in candles if start_day <= c.day <= end_day]
    if not period:
        return None
    if direction == "high":
        candle = max(period, key=lambda c: c.high)
        return {"price": candle.high, "date": candle.from_date}
    candle = min(period, key=lambda c: c.low)
    return {"price": candle.low, "date": candle.from_date}


def performance_in_range(candles: list[Candle], start: str, end: str) -> dict[str, Any] | None:
    start_candle = closest_trading_day(candles, start)
    end_candle = closest_trading_day(candles, end)
    if start_candle is None or end_candle is None or start_candle.close == 0:
        return None
    performance = (end_candle.close - start_candle.close) / start_candle.close * 100
    return {
        "performance": performance,
        "startDate": start_candle.from_date,
        "endDate": end_candle.from_date,
        "startPrice": start_candle.close,
        "endPrice": end_candle.close,
        "period": {"start": start_candle.from_date, "end": end_candle.from_date},
    }


# ---------------------------------------------------------------------------
# Tool Definitions
# ---------------------------------------------------------------------------

_INSTRUMENT_ID_DOC = "Unique identifier of the financial instrument to retrieve candles for."
_ISO_DATE = 'in ISO format (e.g., "2025-06-03T00:00:00Z")'


# Arguments are camelCase on the wire, matching the instrumentId the model
# sees in ticker matches and query rows.
class ToolInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SingleDayPriceInput(ToolInput):
    instrument_id: int = Field(description=_INSTRUMENT_ID_DOC)
    date: str = Field(description=f"The date to get the price for, {_ISO_DATE}")


class AllTimeHighInput(ToolInput):
    instrument_id: int = Field(description=_INSTRUMENT_ID_DOC)


class PeriodInput(ToolInput):
    instrument_id: int = Field(description=_INSTRUMENT_ID_DOC)
    start_date: str = Field(description=f"Start date of the period {_ISO_DATE}")
    end_date: str = Field(description=f"End date of the period {_ISO_DATE}")


class HighOrLowInput(PeriodInput):
    direction: Literal["high", "low"] = Field(
        description="Whether to get the highest or lowest price in the period",
    )


def build_market_data_tools(client: MarketDataClient) -> list[Tool]:
    """The four price tools, bound to one client."""

    async def get_single_day_price(args: SingleDayPriceInput):
        candles = await client.candles(args.instrument_id, "OneDay", candle_count_since(args.date))
        return single_day_price(candles, args.date)

    async def get_all_time_high(args: AllTimeHighInput):
        candles = await client.candles(args.instrument_id, "OneWeek", MAX_CANDLES)
        return all_time_high(candles)

    async def get_high_or_low_in_period(args: HighOrLowInput):
        candles = await client.candles(args.instrument_id, "OneDay", candle_count_since(args.start_date))
        return high_or_low_in_period(candles, args.start_date, args.end_date, args.direction)

    async def get_performance_in_range(args: PeriodInput):
        candles = await client.candles(args.instrument_id, "OneDay", candle_count_since(args.start_date))
        return performance_in_range(candles, args.start_date, args.end_date)

    return [
        Tool(
            name="get_single_day_price",
            description=(
                "Get the OHLC price data for a financial instrument on a specific date, "
                "or the closest earlier trading day if that date was a non-trading day."
            ),
            input_model=SingleDayPriceInput,
            handler=get_single_day_price,
        ),
        Tool(
            name="get_all_time_high",
            description=(
                "Get the all-time high price for a financial instrument from the last "
                "1000 weekly candles, with the week in which it occurred."
            ),
            input_model=AllTimeHighInput,
            handler=get_all_time_high,
        ),
        Tool(
            name="get_high_or_low_in_period",
            description="Get the highest or lowest price for a financial instrument within a date range.",
            input_model=HighOrLowInput,
            handler=get_high_or_low_in_period,
        ),
        Tool(
            name="get_performance_in_range",
            description=(
                "Get the performance (percentage change) of a financial instrument between "
                "two dates, using the closest available trading days for weekends and holidays."
            ),
            input_model=PeriodInput,
            handler=get_performance_in_range,
        ),
    ]
