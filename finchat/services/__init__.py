# =============================================================================
# Services Package — Integration & Pure Logic
# =============================================================================
# Everything the agents call that is not itself a model-driven agent:
#   - llm.py: Multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - structured.py: Schema-constrained generation, blocking and streamed
#   - sql_safety.py: Destructive-keyword filter + identifier quoting
#   - query_executor.py: Runs candidate queries against the read replica
#   - ticker_resolver.py: Full-text instrument lookup by name/ticker
#   - portfolio.py: Brokerage portfolio fetch + catalog enrichment
#   - market_data.py: Candle API client and the price tools built on it
#   - messages.py: Conversation history + turn persistence
#   - tracing.py: Per-turn trace context (spans, generations, usage)
# =============================================================================
