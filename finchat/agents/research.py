# =============================================================================
# Research Agents — Portfolio Analysis, Web Research, Tool-Backed Price Data
# =============================================================================
#
# The three evidence sources that produce prose instead of SQL:
#
#   analyse_portfolio()  — structured call; markdown composition & summary
#                          of the user's holdings ("Portfolio Analysis")
#   web_research()       — search-grounded completion for news, CEOs,
#                          earnings calls and guidance ("Google Search")
#   additional_data()    — tool-calling loop over the market-data tools
#                          for price questions ("Additional Data")
#
# Each one reports its own step_start / step_finish events and raises on
# failure; the orchestrator isolates the failure and reports the step.
# =============================================================================

from __future__ import annotations

import logging
import time

from finchat.agents.prompts import (
    PORTFOLIO_ANALYSIS_SYSTEM,
    PromptContext,
    portfolio_analysis_message,
    tool_agent_message,
    tool_agent_system,
    web_research_message,
    web_research_system,
)
from finchat.agents.schemas import PortfolioAnalysis
from finchat.config import settings
from finchat.models.responses import step_finish, step_start
from finchat.services.llm import LLMProvider, Tool
from finchat.services.query_executor import EventSink
from finchat.services.structured import generate_object
from finchat.services.tracing import TraceContext

logger = logging.getLogger(__name__)

PORTFOLIO_ANALYSIS_STEP = "Portfolio Analysis"
WEB_RESEARCH_STEP = "Google Search"
ADDITIONAL_DATA_STEP = "Additional Data"


def _noop(event) -> None:
    return None


async def analyse_portfolio(
    ctx: PromptContext,
    llm: LLMProvider,
    emit: EventSink | None = None,
    trace: TraceContext | None = None,
) -> str:
    """Markdown analysis of the user's portfolio; runs even when it is empty."""
    emit = emit or _noop
    emit(step_start(PORTFOLIO_ANALYSIS_STEP))

    analysis, _ = await generate_object(
        llm,
        PortfolioAnalysis,
        messages=[{"role": "user", "content": portfolio_analysis_message(ctx)}],
        system=PORTFOLIO_ANALYSIS_SYSTEM,
        trace=trace,
        name="portfolio_analysis",
    )
    emit(step_finish(
        PORTFOLIO_ANALYSIS_STEP, bool(analysis.content), "Finished getting portfolio analysis data",
    ))
    return analysis.content


async def web_research(
    ctx: PromptContext,
    llm: LLMProvider,
    emit: EventSink | None = None,
    trace: TraceContext | None = None,
) -> str:
    emit = emit or _noop
    emit(step_start(WEB_RESEARCH_STEP))

    generation = trace.generation("web_research", input=ctx.prompt) if trace else None
    start = time.monotonic()
    try:
        response = await llm.complete(
            messages=[{"role": "user", "content": web_research_message(ctx)}],
            system=web_research_system(ctx),
            web_search=True,
        )
    except Exception as e:
        if generation:
            generation.end(error=e)
        raise

    if generation:
        generation.end(output=response.content, usage=(response.input_tokens, response.output_tokens))
    logger.info("Web research took %dms", int((time.monotonic() - start) * 1000))
    emit(step_finish(WEB_RESEARCH_STEP, bool(response.content), "Finished getting google search data"))
    return response.content


async def additional_data(
    ctx: PromptContext,
    llm: LLMProvider,
    tools: list[Tool],
    emit: EventSink | None = None,
    trace: TraceContext | None = None,
) -> str:
    emit = emit or _noop
    emit(step_start(ADDITIONAL_DATA_STEP, "Getting Additional data"))

    generation = trace.generation("additional_data", input=ctx.prompt) if trace else None
    start = time.monotonic()
    try:
        response = await llm.complete_with_tools(
            messages=[{"role": "user", "content": tool_agent_message(ctx)}],
            tools=tools,
            system=tool_agent_system(ctx),
            max_steps=settings.tool_agent_max_steps,
        )
    except Exception as e:
        if generation:
            generation.end(error=e)
        raise

    if generation:
        generation.end(
            output={
                "text": response.content,
                "tools": [call.name for call in response.tool_calls],
            },
            usage=(response.input_tokens, response.output_tokens),
        )
    logger.info(
        "Tool agent made %d tool calls in %dms",
        len(response.tool_calls), int((time.monotonic() - start) * 1000),
    )
    emit(step_finish(ADDITIONAL_DATA_STEP, bool(response.content), "Finished getting Additional Data"))
    return response.content
