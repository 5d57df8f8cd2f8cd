# =============================================================================
# Evidence Orchestrator — LangGraph Graph from Classification to Evidence
# =============================================================================
#
# Given a finished Classification, gathers everything the final answer
# needs. Classification itself runs before this graph (in the pipeline) so
# that its failure can still become an HTTP error.
#
# GRAPH TOPOLOGY:
#   START ──▶ resolve ──▶ gather ──▶ execute ──▶ END
#
#   resolve  — ticker resolution and the portfolio fetch, concurrently;
#              both degrade to [] on failure
#   gather   — the evidence tasks whose precondition holds: up to seven
#              query agents, portfolio analysis, web research, tool agent
#   execute  — run the SQL candidates; no rows at all → ticker fallback
#
# DESIGN DECISION: Dispatch is a tagged list, evaluated once.
# EVIDENCE_TASKS pairs every task with its precondition over the frozen
# Classification. plan_evidence_tasks() filters it once; nothing is
# re-evaluated after results arrive, and the plan is testable without
# any model call.
#
# DESIGN DECISION: Per-task isolation.
# run_isolated() waits for every task (a join barrier) and records each
# failure or timeout as a TaskOutcome instead of cancelling siblings. A
# failed task is reported to the client as a failed step and contributes
# no evidence.
#
# DESIGN DECISION: Collaborators travel in the state.
# EvidenceDeps (engine, resolver, fetcher, tools, provider factory), the
# event sink and the trace are not serialisable. That is fine as long as
# the graph has no checkpointer, which it does not.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from langgraph.graph import END, START, StateGraph
from sqlalchemy.ext.asyncio import AsyncEngine
from typing_extensions import TypedDict

from finchat.agents.prompts import PromptContext
from finchat.agents.query_agents import QUERY_DOMAINS, QueryDomain, draft_query
from finchat.agents.research import (
    ADDITIONAL_DATA_STEP,
    PORTFOLIO_ANALYSIS_STEP,
    WEB_RESEARCH_STEP,
    additional_data,
    analyse_portfolio,
    web_research,
)
from finchat.agents.schemas import Classification, Evidence, QueryRows, TickerFallback
from finchat.config import settings
from finchat.models.responses import status_event, step_finish, step_start
from finchat.services.llm import LLMProvider, Tool, get_stage_provider
from finchat.services.market_data import MarketDataClient, build_market_data_tools
from finchat.services.portfolio import PortfolioFetcher, PortfolioPosition
from finchat.services.query_executor import CandidateQuery, EventSink, QueryExecutor
from finchat.services.ticker_resolver import TickerMatch, TickerResolver
from finchat.services.tracing import TraceContext

logger = logging.getLogger(__name__)

PORTFOLIO_DATA_STEP = "Portfolio Data"


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@dataclass
class EvidenceDeps:
    evidence_engine: AsyncEngine
    resolver: TickerResolver
    portfolio_fetcher: PortfolioFetcher
    market_tools: list[Tool]
    llm_for_stage: Callable[[str], LLMProvider] = get_stage_provider

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> EvidenceDeps:
        return cls(
            evidence_engine=engine,
            resolver=TickerResolver(engine),
            portfolio_fetcher=PortfolioFetcher(engine),
            market_tools=build_market_data_tools(MarketDataClient()),
        )


# ---------------------------------------------------------------------------
# Dispatch plan
# ---------------------------------------------------------------------------


def wants_web_search(c: Classification) -> bool:
    return (
        c.is_about_earnings_calls_summaries_or_revenue_segmentation
        or c.is_about_important_ceos
        or c.is_about_news
        or c.is_about_earnings_dates
        or c.is_about_corporate_guidance_or_strategic_outlook
        or (
            (c.is_about_crypto or c.is_about_currencies_or_commodities_or_indices)
            and not c.is_about_user_portfolio
            and not c.is_about_investors
        )
    )


@dataclass(frozen=True)
class EvidenceTask:
    name: str
    step_name: str
    precondition: Callable[[Classification], bool]
    query_domain: QueryDomain | None = None


EVIDENCE_TASKS: tuple[EvidenceTask, ...] = (
    *(
        EvidenceTask(f"query:{domain.name}", domain.step_name, domain.precondition, domain)
        for domain in QUERY_DOMAINS
    ),
    EvidenceTask(
        "portfolio_analysis", PORTFOLIO_ANALYSIS_STEP, lambda c: c.is_about_user_portfolio,
    ),
    EvidenceTask("web_research", WEB_RESEARCH_STEP, wants_web_search),
    EvidenceTask(
        "additional_data", ADDITIONAL_DATA_STEP, lambda c: c.is_about_asset_prices_or_performance,
    ),
)


def plan_evidence_tasks(classification: Classification) -> list[EvidenceTask]:
    """The tasks to dispatch for this classification, in dispatch order."""
    return [task for task in EVIDENCE_TASKS if task.precondition(classification)]


@dataclass
class TaskOutcome:
    task: EvidenceTask
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_isolated(
    jobs: list[tuple[EvidenceTask, Awaitable[Any]]],
    timeout: float | None = None,
) -> list[TaskOutcome]:
    """
    Await every job; one job failing or timing out never affects another.

    Outcomes come back in job order.
    """
    timeout = timeout or settings.evidence_task_timeout_seconds

    async def _one(task: EvidenceTask, job: Awaitable[Any]) -> TaskOutcome:
        try:
            return TaskOutcome(task, value=await asyncio.wait_for(job, timeout=timeout))
        except asyncio.TimeoutError:
            logger.warning("Evidence task %s timed out after %ss", task.name, timeout)
            return TaskOutcome(task, error=f"timed out after {timeout}s")
        except Exception as e:
            logger.warning("Evidence task %s failed: %s", task.name, e)
            return TaskOutcome(task, error=str(e) or type(e).__name__)

    return list(await asyncio.gather(*(_one(task, job) for task, job in jobs)))


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class EvidenceBundle:
    """Everything the synthesizer receives."""

    classification: Classification
    evidence: Evidence
    ticker_matches: list[TickerMatch] = field(default_factory=list)
    portfolio: list[PortfolioPosition] = field(default_factory=list)
    candidate_queries: list[CandidateQuery] = field(default_factory=list)
    portfolio_analysis: str | None = None
    web_research: str | None = None
    additional_data: str | None = None
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def evidence_row_count(self) -> int:
        if isinstance(self.evidence, QueryRows):
            return sum(1 for row in self.evidence.rows if isinstance(row, dict) and "reasoning" not in row)
        return 0


# ---------------------------------------------------------------------------
# Graph State
# ---------------------------------------------------------------------------


class EvidenceState(TypedDict, total=False):
    """
    State that flows through the evidence graph.

    total=False: nodes return only the keys they update.
    """

    # --- Input (set by gather_evidence) ---
    prompt: str
    history: list[dict[str, str]]
    username: str | None
    classification: Classification
    today: date
    deps: EvidenceDeps
    emit: EventSink
    trace: TraceContext | None

    # --- Set by resolve ---
    ticker_matches: list[TickerMatch]
    portfolio: list[PortfolioPosition]

    # --- Set by gather ---
    candidate_queries: list[CandidateQuery]
    portfolio_analysis: str | None
    web_research: str | None
    additional_data: str | None
    failures: dict[str, str]

    # --- Set by execute ---
    evidence: Evidence


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def _resolve_tickers(state: EvidenceState) -> list[TickerMatch]:
    trace = state.get("trace")
    span = trace.span("ticker_resolution") if trace else None
    try:
        matches = await asyncio.wait_for(
            state["deps"].resolver.resolve(state["classification"]),
            timeout=settings.ticker_resolution_timeout_seconds,
        )
    except Exception as e:
        logger.warning("Ticker resolution failed, continuing without matches: %s", e)
        if span:
            span.end(error=e)
        return []
    if span:
        span.end(output=[m.ticker for m in matches])
    return matches


async def _fetch_portfolio(state: EvidenceState) -> list[PortfolioPosition]:
    if not state["classification"].is_about_user_portfolio:
        return []

    emit = state["emit"]
    emit(step_start(PORTFOLIO_DATA_STEP, "Getting your portfolio data"))
    username = state.get("username")
    positions: list[PortfolioPosition] = []
    if not username:
        logger.info("Portfolio question without a username; using an empty portfolio")
    else:
        trace = state.get("trace")
        span = trace.span("portfolio_fetch", input=username) if trace else None
        try:
            positions = await asyncio.wait_for(
                state["deps"].portfolio_fetcher.fetch(username),
                timeout=settings.portfolio_timeout_seconds,
            )
        except Exception as e:
            logger.warning("Portfolio fetch for '%s' failed, using an empty portfolio: %s", username, e)
            if span:
                span.end(error=e)
        else:
            if span:
                span.end(output={"positions": len(positions)})

    emit(step_finish(PORTFOLIO_DATA_STEP, bool(positions), "Finished getting your portfolio data"))
    return positions


async def resolve_node(state: EvidenceState) -> dict:
    """Ticker matches and portfolio, fetched concurrently."""
    matches, portfolio = await asyncio.gather(_resolve_tickers(state), _fetch_portfolio(state))
    state["emit"](status_event("sql_step", "Fetching all relevant data for your question..."))
    return {"ticker_matches": matches, "portfolio": portfolio}


async def _run_task(task: EvidenceTask, ctx: PromptContext, state: EvidenceState) -> Any:
    deps, emit, trace = state["deps"], state["emit"], state.get("trace")
    if task.query_domain is not None:
        return await draft_query(task.query_domain, ctx, deps.llm_for_stage("query_agent"), emit, trace)
    if task.name == "portfolio_analysis":
        return await analyse_portfolio(ctx, deps.llm_for_stage("portfolio_analysis"), emit, trace)
    if task.name == "web_research":
        return await web_research(ctx, deps.llm_for_stage("web_research"), emit, trace)
    if task.name == "additional_data":
        return await additional_data(
            ctx, deps.llm_for_stage("tool_agent"), deps.market_tools, emit, trace,
        )
    raise ValueError(f"Unknown evidence task '{task.name}'")


async def gather_node(state: EvidenceState) -> dict:
    """Dispatch every planned evidence task concurrently, isolating failures."""
    ctx = PromptContext(
        prompt=state["prompt"],
        classification=state["classification"],
        history=state.get("history") or [],
        ticker_matches=state.get("ticker_matches") or [],
        portfolio=state.get("portfolio") or [],
        today=state.get("today") or date.today(),
    )
    tasks = plan_evidence_tasks(state["classification"])
    logger.info("Dispatching evidence tasks: %s", [task.name for task in tasks])

    outcomes = await run_isolated([(task, _run_task(task, ctx, state)) for task in tasks])

    update: dict[str, Any] = {
        "candidate_queries": [],
        "portfolio_analysis": None,
        "web_research": None,
        "additional_data": None,
        "failures": {},
    }
    for outcome in outcomes:
        task = outcome.task
        if not outcome.ok:
            update["failures"][task.name] = outcome.error
            state["emit"](step_finish(task.step_name, False, f"Could not get {task.step_name} data"))
        elif task.query_domain is not None:
            update["candidate_queries"].append(outcome.value)
        else:
            update[task.name] = outcome.value
    return update


async def execute_node(state: EvidenceState) -> dict:
    """Run the SQL candidates; fall back to the ticker matches when nothing came back."""
    executor = QueryExecutor(state["deps"].evidence_engine, state["emit"], state.get("trace"))
    rows = await executor.execute_all(state.get("candidate_queries") or [])
    if rows:
        return {"evidence": QueryRows(rows)}
    logger.info("No query rows; passing %d ticker matches as evidence", len(state.get("ticker_matches") or []))
    return {"evidence": TickerFallback(list(state.get("ticker_matches") or []))}


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------
# Compiled once at module level and shared by concurrent turns.
# ---------------------------------------------------------------------------

_builder = StateGraph(EvidenceState)
_builder.add_node("resolve", resolve_node)
_builder.add_node("gather", gather_node)
_builder.add_node("execute", execute_node)

_builder.add_edge(START, "resolve")
_builder.add_edge("resolve", "gather")
_builder.add_edge("gather", "execute")
_builder.add_edge("execute", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def gather_evidence(
    classification: Classification,
    prompt: str,
    deps: EvidenceDeps,
    history: list[dict[str, str]] | None = None,
    username: str | None = None,
    emit: EventSink | None = None,
    trace: TraceContext | None = None,
    today: date | None = None,
) -> EvidenceBundle:
    """Run the evidence graph for one classified turn."""
    initial_state: EvidenceState = {
        "prompt": prompt,
        "history": history or [],
        "username": username,
        "classification": classification,
        "today": today or date.today(),
        "deps": deps,
        "emit": emit or (lambda event: None),
        "trace": trace,
    }
    result = await graph.ainvoke(initial_state)

    bundle = EvidenceBundle(
        classification=classification,
        evidence=result["evidence"],
        ticker_matches=result.get("ticker_matches") or [],
        portfolio=result.get("portfolio") or [],
        candidate_queries=result.get("candidate_queries") or [],
        portfolio_analysis=result.get("portfolio_analysis"),
        web_research=result.get("web_research"),
        additional_data=result.get("additional_data"),
        failures=result.get("failures") or {},
    )
    logger.info(
        "Evidence gathered: %s with %d rows, %d tickers, %d positions, %d failed tasks",
        bundle.evidence.kind, bundle.evidence_row_count, len(bundle.ticker_matches),
        len(bundle.portfolio), len(bundle.failures),
    )
    return bundle
