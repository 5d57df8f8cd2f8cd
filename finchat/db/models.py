# =============================================================================
# Database Models — SQLAlchemy ORM (application store)
# =============================================================================
#
# The chat service owns only two tables. The evidence views it queries live
# in the read replica and are described in views.py, not here.
#
# SCHEMA OVERVIEW:
#
# ┌───────────────────────────┐    ┌───────────────────────────────────┐
# │  chat_messages            │    │  turn_metrics                     │
# ├───────────────────────────┤    ├───────────────────────────────────┤
# │ id (PK)                   │    │ id (PK)                           │
# │ conversation_id (indexed) │    │ conversation_id (indexed)         │
# │ role                      │    │ question                          │
# │ content (text)            │    │ classification_flags (jsonb)      │
# │ payload (jsonb)           │    │ model, status, error_code         │
# │ created_at                │    │ total_latency_ms                  │
# └───────────────────────────┘    │ input_tokens / output_tokens      │
#                                  │ evidence_rows / ticker_matches    │
#                                  │ portfolio_positions / created_at  │
#                                  └───────────────────────────────────┘
#
# DESIGN DECISIONS:
#
# 1. conversation_id is a client-supplied string, not a foreign key. The
#    conversation itself (title, visibility, owner) belongs to the chat UI's
#    own store; this service only appends messages to it.
#
# 2. JSONB `payload` keeps the full structured FinalAnswer (chart data,
#    tickers, follow-ups) next to the markdown text, so the UI can re-render
#    a past answer exactly.
#
# 3. turn_metrics is write-only from the request path (background task) and
#    read by offline dashboards.
# =============================================================================

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for the application store."""

    pass


class ChatMessage(Base):
    """
    One message in a conversation.

    A completed turn writes two rows: the user's prompt (role "user") and
    the final answer (role "assistant", with the structured answer in
    `payload`).
    """

    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    conversation_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # "user" or "assistant"
    role: Mapped[str] = mapped_column(String(16), nullable=False)

    # Markdown text shown in the chat history
    content: Mapped[str] = mapped_column(Text, nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_chat_messages_conversation_created", "conversation_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ChatMessage(id={self.id}, conversation='{self.conversation_id}', "
            f"role='{self.role}')>"
        )


class TurnMetric(Base):
    """
    Timing, usage and evidence counts for one chat turn.

    Written by a background task after the stream finishes, whether the turn
    succeeded or ended with an error event.
    """

    __tablename__ = "turn_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    conversation_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True, index=True,
    )

    question: Mapped[str] = mapped_column(Text, nullable=False)

    # Topic flags from classification, e.g. {"isAboutNews": true, ...}
    classification_flags: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    model: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # "completed", "error" or "cancelled"
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    total_latency_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    evidence_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ticker_matches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    portfolio_positions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<TurnMetric(id={self.id}, status='{self.status}', "
            f"latency={self.total_latency_ms}ms)>"
        )
