# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request body and stream-event schemas for the HTTP surface.
# These are SEPARATE from the database models (finchat/db/models.py) and
# from the model-facing agent schemas (finchat/agents/schemas.py).
# =============================================================================
