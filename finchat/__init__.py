# =============================================================================
# Financial Assistant Chat Backend
# =============================================================================
# Classifies a user's question, gathers evidence from SQL views, the user's
# brokerage portfolio, web research and market-data tools, then streams a
# structured answer back to the client.
#
# Package structure:
#   finchat/
#   ├── api/          → FastAPI route handlers (chat stream, health) + deps
#   ├── agents/       → Classification, query agents, research agents,
#   │                    evidence orchestration (LangGraph), synthesis
#   ├── db/           → Engines, ORM models, evidence view contracts
#   ├── models/       → Pydantic V2 request/response/stream schemas
#   └── services/     → LLM providers, SQL safety + execution, ticker
#                        resolution, portfolio, market data, tracing
# =============================================================================
