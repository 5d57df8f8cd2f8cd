# =============================================================================
# Message Store — Conversation History & Turn Persistence
# =============================================================================
#
# The application store's only two jobs in the request path:
#
#   history_tail() — the last N messages of a conversation, oldest first,
#                    for requests that do not carry their own history
#   save_turn()    — after the stream ends, write the user message, the
#                    final answer and one TurnMetric row
#
# DESIGN DECISION: Own session per call.
# save_turn() runs as a background task after the response has been sent,
# so it opens a fresh session from the factory rather than borrowing the
# request's. Persistence failures are logged, never raised: the user has
# already received the answer.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from finchat.config import settings
from finchat.db.models import ChatMessage, TurnMetric

logger = logging.getLogger(__name__)


@dataclass
class TurnRecord:
    """Everything save_turn() writes for one finished turn."""

    conversation_id: str
    question: str
    status: str
    total_latency_ms: int
    answer_text: str | None = None
    answer_payload: dict[str, Any] | None = None
    classification_flags: dict[str, bool] | None = None
    model: str | None = None
    error_code: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    evidence_rows: int = 0
    ticker_matches: int = 0
    portfolio_positions: int = 0


class MessageStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def history_tail(self, conversation_id: str, limit: int | None = None) -> list[dict[str, str]]:
        limit = limit or settings.history_tail_length
        stmt = (
            select(ChatMessage.role, ChatMessage.content)
            .where(ChatMessage.conversation_id == conversation_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()
        return [{"role": role, "content": content} for role, content in reversed(rows)]

    async def save_turn(self, record: TurnRecord) -> None:
        try:
            async with self._session_factory() as session:
                if record.status == "completed" and record.answer_text is not None:
                    session.add(ChatMessage(
                        conversation_id=record.conversation_id,
                        role="user",
                        content=record.question,
                    ))
                    session.add(ChatMessage(
                        conversation_id=record.conversation_id,
                        role="assistant",
                        content=record.answer_text,
                        payload=record.answer_payload,
                    ))
                session.add(TurnMetric(
                    conversation_id=record.conversation_id,
                    question=record.question,
                    classification_flags=record.classification_flags,
                    model=record.model,
                    status=record.status,
                    error_code=record.error_code,
                    total_latency_ms=record.total_latency_ms,
                    input_tokens=record.input_tokens,
                    output_tokens=record.output_tokens,
                    evidence_rows=record.evidence_rows,
                    ticker_matches=record.ticker_matches,
                    portfolio_positions=record.portfolio_positions,
                ))
                await session.commit()
            logger.info(
                "Saved turn for conversation %s (status=%s, latency=%dms)",
                record.conversation_id, record.status, record.total_latency_ms,
            )
        except Exception as e:
            logger.warning("Failed to persist turn for %s: %s", record.conversation_id, e)
