# =============================================================================
# Evidence View Contracts — Read-Replica Schema
# =============================================================================
#
# The read replica exposes a fixed set of case-sensitive, mixed-case views.
# These Table objects are the single description of their columns:
#
#   - The ticker resolver and portfolio enrichment build typed selects
#     against them (SQLAlchemy quotes the mixed-case names for us).
#   - The query-agent prompts render their column lists from them via
#     describe_columns(), so the instructions a model sees can never drift
#     from what the executor will actually run against.
#
# DESIGN DECISION: Separate MetaData, never created.
# The views are owned by the data platform. They are declared on their own
# MetaData so that nothing in this service can accidentally emit DDL for
# them alongside the application tables.
#
# Column comments double as prompt text; keep them short and factual.
# =============================================================================

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB

views_metadata = MetaData()


# ---------------------------------------------------------------------------
# Instrument catalog
# ---------------------------------------------------------------------------
# assetClassId codes: 1 currency, 2 commodity, 4 index, 5 stock, 6 ETF,
# 10 crypto.
# ---------------------------------------------------------------------------
instruments_view = Table(
    "instruments_view",
    views_metadata,
    Column("instrumentId", Integer, primary_key=True, comment="Unique instrument identifier"),
    Column("ticker", String, comment="Platform ticker symbol"),
    Column("name", String, comment="Display name"),
    Column(
        "assetClassId", Integer,
        comment="Asset type: 1 Forex, 2 Commodities, 4 Indices, 5 Stocks, 6 ETFs, 10 Cryptocurrencies",
    ),
    Column(
        "popularityUniques7Day", Integer,
        comment="Popularity rank over the last 7 days, 1 is the most popular",
    ),
)


# ---------------------------------------------------------------------------
# Stock fundamentals
# ---------------------------------------------------------------------------
fundamentals_view = Table(
    "fundamentals_view",
    views_metadata,
    # Identification
    Column("instrumentId", Integer, primary_key=True, comment="Unique instrument identifier, primary key"),
    Column("ticker", String, comment="Stock ticker symbol (e.g. AAPL)"),
    Column("name", String, comment="Full company name (e.g. Apple Inc.)"),
    Column("exchange", String, comment="Exchange where the stock trades (e.g. Nasdaq, NYSE)"),
    Column("countryCode", String, comment="Two-letter headquarters country code (e.g. FR, GB)"),
    Column("currencyCode", String, comment="Pricing and reporting currency (e.g. USD, EUR)"),
    # Profile & size
    Column("sector", String, comment="Broad economic sector (e.g. Technology, Healthcare)"),
    Column("industry", String, comment="Specific industry (e.g. Apparel Or Footwear, Major Banks)"),
    Column("fullTimeEmployees", Integer, comment="Number of full-time employees"),
    Column("marketCapUSD", Float, comment="Market capitalization in US dollars"),
    # Profitability
    Column("ebitda", Float, comment="Earnings before interest, taxes, depreciation and amortization"),
    Column("peRatio", Float, comment="Price-to-earnings ratio"),
    Column("pegRatio", Float, comment="P/E divided by earnings growth rate"),
    Column("profitMargin", Float, comment="Net income divided by revenue"),
    Column("operatingMargin", Float, comment="Operating income divided by revenue"),
    Column("returnOnAssets", Float, comment="Net income divided by total assets"),
    Column("returnOnEquity", Float, comment="Net income divided by shareholder equity"),
    Column("revenueTTM", Float, comment="Revenue over the trailing twelve months"),
    Column("quartelyRevenueGrowth", Float, comment="Year-over-year quarterly revenue growth"),
    Column("grossProfit", Float, comment="Revenue minus cost of goods sold"),
    Column("quarterlyEarningsGrowth", Float, comment="Year-over-year quarterly earnings growth"),
    # Valuation
    Column("priceToSales", Float, comment="Market cap divided by revenue"),
    Column("forwardAnnualDividendYield", Float, comment="Expected annual dividend divided by share price"),
    Column("exDivDate", Date, comment="Ex-dividend date"),
    Column("beta", Float, comment="Volatility relative to the market; 1 moves with the market"),
    Column("enterpriseValueRevenue", Float, comment="Enterprise value divided by revenue"),
    Column("enterpriseValue", Float, comment="Market cap plus debt minus cash"),
    Column("enterpriseValueEbitda", Float, comment="Enterprise value divided by EBITDA"),
    # Analysts
    Column(
        "analystConsensus", String,
        comment="One of 'Strong Buy', 'Moderate Buy', 'Hold', 'Moderate Sell', 'Strong Sell'",
    ),
    Column("analystsTotal", Integer, comment="Number of analysts in the consensus"),
    Column("analystPriceTarget", Float, comment="Average analyst price target"),
    Column("fiveYearAveragePERatio", Float, comment="Average P/E over the last five years"),
    # Ownership & sentiment
    Column("institutionalOwnership", Float, comment="Percentage of shares held by institutions"),
    Column("avgNewsSentiment", Float, comment="Average news sentiment score"),
    # Thematic flags
    Column("isDividendAristocrat", Boolean, comment="Raised its dividend for at least 25 consecutive years"),
    Column("isAiRevolution", Boolean, comment="Significantly involved in the AI revolution"),
    Column("isNuclear", Boolean, comment="Involved in the nuclear industry"),
    Column(
        "popularityRankingLast7d", Integer,
        comment="Popularity rank on the platform over the last 7 days, 1 is the most popular",
    ),
    Column("priceToGrossProfit", Float, comment="Market cap divided by gross profit"),
)


# ---------------------------------------------------------------------------
# ETF fundamentals
# ---------------------------------------------------------------------------
etf_fundamentals_view = Table(
    "etf_fundamentals_view",
    views_metadata,
    Column("instrumentId", Integer, primary_key=True, comment="Unique instrument identifier"),
    Column("ticker", String, comment="ETF ticker symbol"),
    Column("name", String, comment="ETF name"),
    Column("country", String, comment="Domicile in ISO 3166-2 format"),
    Column("divYield", Float, comment="Dividend yield"),
    Column(
        "internalExchangeName", String,
        comment="One of LSE, Chicago Board Options Exchange, Extended Hours Trading, Nasdaq, NYSE, Xetra ETFs",
    ),
    Column("low52W", Float, comment="52-week low"),
    Column("high52W", Float, comment="52-week high"),
    Column("currentPrice", Float, comment="Current price"),
    Column("segment", String, comment="Investment category"),
    Column("return1M", Float, comment="1-month return"),
    Column("return3M", Float, comment="3-month return"),
    Column("return6M", Float, comment="6-month return"),
    Column("return1Y", Float, comment="1-year return"),
    Column("return3Y", Float, comment="3-year return"),
    Column("return5Y", Float, comment="5-year return"),
    Column("return10Y", Float, comment="10-year return"),
    Column("returnYTD", Float, comment="Year-to-date return"),
    Column("AUM", Float, comment="Assets under management"),
    Column("top10HoldingPct", Float, comment="Weight of the top 10 holdings"),
    Column("holdingsCount", Integer, comment="Number of holdings"),
    Column("expenseRatio", Float, comment="Annual expense ratio"),
    Column("ratioPPE", Float, comment="Price to earnings of the holdings"),
    Column("ratioPS", Float, comment="Price to sales of the holdings"),
    Column("ratioPFCF", Float, comment="Price to free cash flow of the holdings"),
    Column("isUCITS", Boolean, comment="UCITS compliant"),
    Column("assetClass", String, comment="Asset class"),
    Column("mainRegion", String, comment="Largest regional exposure"),
    Column("mainRegionPct", Float, comment="Weight of the main region"),
    Column("mainSector", String, comment="Largest sector exposure"),
    Column("mainSectorPct", Float, comment="Weight of the main sector"),
    Column("isBuyEnabled", Boolean, comment="Can be bought on the platform"),
    Column("type", String, comment="ETF type"),
    Column("currencyCode", String, comment="Trading currency"),
    Column(
        "popularityUniques7Day", Integer,
        comment="Popularity rank on the platform, 1 is the most popular",
    ),
)


# ---------------------------------------------------------------------------
# Latest news
# ---------------------------------------------------------------------------
latestnews_view = Table(
    "latestnews_view",
    views_metadata,
    Column("ticker", String, comment="Ticker the article is about"),
    Column("instrumentId", Integer, comment="Instrument identifier"),
    Column("source", String, comment="Publisher"),
    Column("title", Text, comment="Headline"),
    Column("description", Text, comment="Short summary"),
    Column("publishTime", DateTime(timezone=True), comment="Publication timestamp"),
    Column("cityfalconScore", Float, comment="Relevance and credibility score, higher is better"),
)


# ---------------------------------------------------------------------------
# Earnings dates
# ---------------------------------------------------------------------------
earningsdates_view = Table(
    "earningsdates_view",
    views_metadata,
    Column("instrumentId", Integer, comment="Instrument identifier"),
    Column("ticker", String, comment="Ticker symbol"),
    Column("name", String, comment="Company name"),
    Column("earningsDate", Date, comment="Earnings report date"),
    Column("beforeOrAfterMarket", String, comment="'Before Market' or 'After Market'"),
    Column("epsActual", Float, comment="Reported EPS"),
    Column("epsEstimate", Float, comment="Consensus EPS estimate"),
    Column("nextEarningsVerifiedOrTentative", String, comment="Whether the next date is confirmed"),
)


# ---------------------------------------------------------------------------
# Dividend dates
# ---------------------------------------------------------------------------
dividenddates_view = Table(
    "dividenddates_view",
    views_metadata,
    Column("instrumentId", Integer, comment="Instrument identifier"),
    Column("ticker", String, comment="Ticker symbol"),
    Column("name", String, comment="Company name"),
    Column("exDivDate", Date, comment="Ex-dividend date"),
    Column("payDate", Date, comment="Payment date"),
    Column("amount", Float, comment="Dividend amount per share"),
    Column("currency", String, comment="Dividend currency"),
    Column("frequency", String, comment="'Quarterly', 'Semiannual', 'Annual' or 'Other'"),
    Column("type", String, comment="Dividend type, e.g. OrdinaryDividend"),
)


# ---------------------------------------------------------------------------
# Popular investors and SmartPortfolios
# ---------------------------------------------------------------------------
popular_investors_fundamentals = Table(
    "popular_investors_fundamentals",
    views_metadata,
    Column("userName", String, primary_key=True, comment="Platform username"),
    Column("isPopularInvestor", Boolean, comment="TRUE for Popular Investors, FALSE for SmartPortfolios"),
    Column("isFund", Boolean, comment="Account is a fund"),
    Column("copiers", Integer, comment="Number of copiers"),
    Column("highLeveragePct", Float, comment="Share of positions with high leverage"),
    Column("mediumLeveragePct", Float, comment="Share of positions with medium leverage"),
    Column("lowLeveragePct", Float, comment="Share of positions with low leverage"),
    Column("maxDailyRiskScore", Integer, comment="Maximum daily risk score"),
    Column("riskScore", Integer, comment="Risk score from 1 (low) to 10 (high)"),
    Column("dailyDD", Float, comment="Daily drawdown"),
    Column("weeklyDD", Float, comment="Weekly drawdown"),
    Column("peakToValley", Float, comment="Peak-to-valley drawdown"),
    Column("tradesPerWeek", Float, comment="Average trades per week"),
    Column("investorCountryCode", String, comment="Two-letter country code of the investor"),
    Column("fullname", String, comment="Full name"),
    Column("piLevel", String, comment="Popular Investor program level"),
    Column("oneWeekPerformance", Float, comment="1-week return"),
    Column("oneMonthPerformance", Float, comment="1-month return"),
    Column("sixMonthsPerformance", Float, comment="6-month return"),
    Column("oneYearPerformance", Float, comment="1-year return"),
    Column("yearToDatePerformance", Float, comment="Year-to-date return"),
    Column("topHeldSector", String, comment="Largest sector held"),
    Column("topHeldSectorPct", Float, comment="Weight of the largest sector"),
    Column("secondTopHeldSector", String, comment="Second largest sector held"),
    Column("secondTopHeldSectorPct", Float, comment="Weight of the second largest sector"),
    Column("biggestHeldPositionPct", Float, comment="Weight of the largest position"),
    Column("secondBiggestHeldPositionPct", Float, comment="Weight of the second largest position"),
    Column(
        "topHeldAssetType", String,
        comment="One of 'ETFs', 'Commodities', 'Stocks', 'Indices', 'Currencies', 'Crypto'",
    ),
    Column("topHeldAssetTypePct", Float, comment="Weight of the largest asset type"),
    Column("secondTopHeldAssetType", String, comment="Second largest asset type"),
    Column("secondTopHeldAssetTypePct", Float, comment="Weight of the second largest asset type"),
    Column("topHeldCountry", String, comment="Largest country exposure"),
    Column("topHeldCountryPct", Float, comment="Weight of the largest country"),
    Column("secondTopHeldCountry", String, comment="Second largest country exposure"),
    Column("secondTopHeldCountryPct", Float, comment="Weight of the second largest country"),
    Column("divYield", Float, comment="Portfolio dividend yield"),
    Column("cashPct", Float, comment="Share held in cash"),
    Column("numOfPositions", Integer, comment="Number of positions"),
    Column("numberOfUniqueAssetTypesHeld", Integer, comment="Distinct asset types held"),
    Column("numberOfUniqueCountriesHeld", Integer, comment="Distinct countries held"),
    Column("biggestHeldPositionTicker", String, comment="Ticker of the largest position"),
    Column("secondBiggestHeldPositionTicker", String, comment="Ticker of the second largest position"),
    Column("positionsHHI", Float, comment="Herfindahl-Hirschman index of positions, 1-10000, lower is more diversified"),
    Column("sectorsHHI", Float, comment="HHI of sectors"),
    Column("countriesHHI", Float, comment="HHI of countries"),
    Column("assetTypesHHI", Float, comment="HHI of asset types"),
    Column("biggestSectorsHeld", JSONB, comment='jsonb {"<sector>": weight}'),
    Column("biggestAssetTypesHeld", JSONB, comment='jsonb {"<assetType>": weight}'),
    Column("biggestPositionsHeld", JSONB, comment='jsonb {"<ticker>": weight}'),
    Column("biggestCountriesHeld", JSONB, comment='jsonb {"<country>": weight}'),
)


# ---------------------------------------------------------------------------
# Realtime prices
# ---------------------------------------------------------------------------
realtime_prices_view = Table(
    "realtime_prices_view",
    views_metadata,
    Column("instrumentId", Integer, primary_key=True, comment="Instrument identifier"),
    Column("ticker", String, comment="Ticker symbol"),
    Column("isMarketOpen", Boolean, comment="Market currently open"),
    Column("price", Float, comment="Current price"),
    Column("pricePercentage", Float, comment="Percentage change from the previous close"),
    Column("oneWeekAgoPrice", Float, comment="Price one week ago"),
    Column("oneMonthAgoPrice", Float, comment="Price one month ago"),
    Column("sixMonthsAgoPrice", Float, comment="Price six months ago"),
    Column("oneYearAgoPrice", Float, comment="Price one year ago"),
    Column("YTDAgoPrice", Float, comment="Price at the start of the year"),
    Column("oneWeekChangePct", Float, comment="1-week change in percent"),
    Column("oneMonthChangePct", Float, comment="1-month change in percent"),
    Column("sixMonthsChangePct", Float, comment="6-month change in percent"),
    Column("oneYearChangePct", Float, comment="1-year change in percent"),
    Column("YTDChangePct", Float, comment="Year-to-date change in percent"),
)


def describe_columns(table: Table, detailed: bool = True) -> str:
    """
    Render a view's columns for a model prompt.

    detailed=True gives one bullet per column with its description;
    detailed=False gives a comma-separated list of quoted names.
    """
    if not detailed:
        return ", ".join(f'"{column.name}"' for column in table.columns)
    return "\n".join(
        f'- "{column.name}": {column.comment}' if column.comment else f'- "{column.name}"'
        for column in table.columns
    )
