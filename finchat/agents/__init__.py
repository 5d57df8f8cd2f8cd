# =============================================================================
# Agents Package — LangGraph Evidence Pipeline
# =============================================================================
# One chat turn flows through these modules:
#   - classifier.py: Topic flags + candidate tickers (fatal on failure)
#   - query_agents.py: One SQL-drafting agent per evidence domain
#   - research.py: Web research, market-data tool agent, portfolio analysis
#   - orchestrator.py: LangGraph graph — resolve context, gather evidence
#     concurrently with per-task isolation, execute queries
#   - synthesizer.py: Streams the structured final answer
#   - partial.py: Diff/merge reducer for streamed partial objects
#   - pipeline.py: Sequences a turn into a stream of client events
# =============================================================================
