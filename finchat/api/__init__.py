# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - chat.py: POST /chat — streams one chat turn as NDJSON or SSE
#   - deps.py: Bearer-token auth and overridable pipeline dependencies
# =============================================================================
