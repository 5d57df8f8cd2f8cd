# =============================================================================
# API Dependencies — Bearer Auth & Pipeline Collaborators
# =============================================================================
#
# require_caller()     — validate the Bearer token against settings.api_tokens
# get_pipeline()       — TurnPipeline bound to the evidence engine
# get_message_store()  — MessageStore bound to the application store
#
# DESIGN DECISION: FastAPI dependencies, not middleware.
# Each route opts in via Depends(), and tests swap any of them with
# app.dependency_overrides without touching the network or a database.
#
# DESIGN DECISION: HTTPBearer(auto_error=False) so that when auth is
# disabled a missing header is not an error. The dependency handles the
# logic itself and returns an anonymous Caller.
# =============================================================================

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from finchat.agents.orchestrator import EvidenceDeps
from finchat.agents.pipeline import TurnPipeline
from finchat.config import settings
from finchat.db.engine import async_session_factory, evidence_engine
from finchat.services.messages import MessageStore

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI docs (shows "Authorize" button in Swagger UI)
_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """Who is calling; `label` becomes the trace user id."""

    label: str
    authenticated: bool = False


ANONYMOUS = Caller(label="anonymous")


def _match_token(token: str) -> str | None:
    for candidate, label in settings.api_tokens.items():
        if secrets.compare_digest(candidate.encode(), token.encode()):
            return label
    return None


async def require_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Caller:
    """
    Resolve the caller from the Authorization header.

    When auth_enabled=False: anonymous caller.
    When auth_enabled=True: 401 for a missing or unknown token.
    """
    if not settings.auth_enabled:
        return ANONYMOUS

    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Missing token. Provide 'Authorization: Bearer <token>' header.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    label = _match_token(credentials.credentials)
    if label is None:
        logger.info("Rejected request with an unknown bearer token")
        raise HTTPException(
            status_code=401,
            detail="Invalid token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Caller(label=label, authenticated=True)


@lru_cache
def get_pipeline() -> TurnPipeline:
    return TurnPipeline(EvidenceDeps.from_engine(evidence_engine))


def get_message_store() -> MessageStore:
    return MessageStore(async_session_factory)
