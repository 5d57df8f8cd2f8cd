# =============================================================================
# Database Package
# =============================================================================
# Async SQLAlchemy engines, application-store ORM models, and the contracts of
# the read-only evidence views.
#
# Key exports:
#   - async_session_factory: sessions for the application store
#   - evidence_engine: read-only pool for the evidence views
#   - ChatMessage, TurnMetric: application-store ORM models
#   - views: Table contracts for the evidence views
# =============================================================================
