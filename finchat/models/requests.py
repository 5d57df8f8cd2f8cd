# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# The body of POST /chat: the latest user message plus the transport fields
# the chat UI always sends (conversation id, chosen model, visibility).
#
# DESIGN DECISION: History is optional.
# Clients that already hold the conversation can send its tail directly;
# clients that only send the new message get the tail loaded from the
# application store by conversation id.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class HistoryMessage(BaseModel):
    """One earlier message of the conversation."""

    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=20000)


class ChatRequest(BaseModel):
    """
    Request body for POST /chat: one chat turn.

    Example:
        {
            "id": "c0f1e4a2",
            "prompt": "How did Apple perform over the last month?",
            "username": "jdoe",
            "generate_chat_title": true,
            "generate_follow_up_questions": true
        }
    """

    # Conversation identifier; messages are appended under it
    id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Conversation identifier",
    )

    prompt: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="The latest user message",
        examples=["How did Apple perform over the last month?"],
    )

    history: list[HistoryMessage] | None = Field(
        default=None,
        description="Earlier messages, oldest first. Loaded from the store when omitted.",
    )

    # Brokerage username whose public portfolio may be fetched
    username: str | None = Field(default=None, max_length=64)

    generate_chat_title: bool = False
    generate_follow_up_questions: bool = False

    # Provider id ("anthropic/claude-sonnet-4-6") for the final answer;
    # None uses the configured provider
    selected_chat_model: str | None = Field(default=None, max_length=256)
    selected_visibility_type: Literal["public", "private"] = "private"

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "id": "c0f1e4a2",
                    "prompt": "Compare the P/E ratios of the big US banks",
                    "generate_chat_title": True,
                    "generate_follow_up_questions": True,
                },
            ]
        }
    )
