# =============================================================================
# Unit Tests — LLM Provider Layer
# =============================================================================
#
# No network: SDK clients are replaced with mocks after construction.
#
# Test groups:
#   1. Provider id parsing for client-selected chat models
#   2. Tool invocation — validation, unknown tools, handler errors
#   3. OpenAI-compatible tool loop and web search fallback
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import BaseModel

from finchat.services.llm import (
    OpenAICompatibleProvider,
    Tool,
    _invoke_tool,
    _parse_provider_id,
    create_provider_from_id,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class EchoInput(BaseModel):
    instrument_id: int


async def _echo(args: EchoInput):
    return {"instrumentId": args.instrument_id, "allTimeHigh": 260.1}


async def _broken(args: EchoInput):
    raise RuntimeError("candles unavailable")


ECHO = Tool(name="echo", description="Echo", input_model=EchoInput, handler=_echo)
BROKEN = Tool(name="broken", description="Broken", input_model=EchoInput, handler=_broken)


# ---------------------------------------------------------------------------
# 1. Provider ids
# ---------------------------------------------------------------------------


class TestParseProviderId:
    def test_anthropic(self):
        assert _parse_provider_id("anthropic/claude-sonnet-4-6") == ("anthropic", "claude-sonnet-4-6", None)

    def test_openai_compatible_with_base_url(self):
        parsed = _parse_provider_id("openai_compatible/deepseek-chat@https://api.deepseek.com/v1")
        assert parsed == ("openai_compatible", "deepseek-chat", "https://api.deepseek.com/v1")

    def test_missing_slash(self):
        with pytest.raises(ValueError):
            _parse_provider_id("claude")

    def test_unknown_provider_type(self):
        with pytest.raises(ValueError):
            _parse_provider_id("mystery/model-1")

    def test_factory_uses_explicit_key(self):
        provider = create_provider_from_id("openai_compatible/gpt-4o-mini", api_key="test-key")
        assert isinstance(provider, OpenAICompatibleProvider)
        assert provider._model == "gpt-4o-mini"


# ---------------------------------------------------------------------------
# 2. Tool invocation
# ---------------------------------------------------------------------------


class TestInvokeTool:
    def test_valid_call(self):
        invocation = _run(_invoke_tool({"echo": ECHO}, "echo", {"instrument_id": 1001}))
        assert invocation.result == {"instrumentId": 1001, "allTimeHigh": 260.1}

    def test_unknown_tool_is_error_payload(self):
        invocation = _run(_invoke_tool({"echo": ECHO}, "nope", {}))
        assert "Unknown tool" in invocation.result["error"]

    def test_invalid_arguments_are_error_payload(self):
        invocation = _run(_invoke_tool({"echo": ECHO}, "echo", {"instrument_id": "abc"}))
        assert invocation.result["error"].startswith("Invalid arguments")

    def test_handler_failure_is_error_payload(self):
        invocation = _run(_invoke_tool({"broken": BROKEN}, "broken", {"instrument_id": 1}))
        assert invocation.result == {"error": "candles unavailable"}


# ---------------------------------------------------------------------------
# 3. OpenAI-compatible provider
# ---------------------------------------------------------------------------


def _completion(content=None, tool_calls=None):
    message = MagicMock()
    message.content = content
    message.tool_calls = tool_calls
    message.model_dump.return_value = {"role": "assistant", "content": content}
    response = MagicMock()
    response.choices = [MagicMock(message=message)]
    response.model = "test-model"
    response.usage.prompt_tokens = 10
    response.usage.completion_tokens = 3
    return response


def _tool_call(call_id: str, name: str, arguments: str):
    call = MagicMock()
    call.id = call_id
    call.function.name = name
    call.function.arguments = arguments
    return call


def _provider(*responses) -> OpenAICompatibleProvider:
    provider = OpenAICompatibleProvider(api_key="test-key", model="test-model")
    provider._client = MagicMock()
    provider._client.chat.completions.create = AsyncMock(side_effect=list(responses))
    return provider


class TestOpenAICompatible:
    def test_tool_loop_feeds_results_back(self):
        provider = _provider(
            _completion(tool_calls=[_tool_call("call_1", "echo", '{"instrument_id": 1001}')]),
            _completion(content="The all-time high was $260.10."),
        )
        response = _run(provider.complete_with_tools(
            [{"role": "user", "content": "ATH of AAPL?"}], [ECHO], system="Use tools.", max_steps=5,
        ))

        assert response.content == "The all-time high was $260.10."
        assert [call.name for call in response.tool_calls] == ["echo"]
        assert response.input_tokens == 20
        messages = provider._client.chat.completions.create.await_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "Use tools."}
        assert messages[-1] == {
            "role": "tool",
            "tool_call_id": "call_1",
            "content": json.dumps({"instrumentId": 1001, "allTimeHigh": 260.1}),
        }

    def test_tool_loop_stops_at_max_steps(self):
        call = _tool_call("call_1", "echo", '{"instrument_id": 1}')
        provider = _provider(*(_completion(tool_calls=[call]) for _ in range(2)))
        response = _run(provider.complete_with_tools([{"role": "user", "content": "q"}], [ECHO], max_steps=2))
        assert len(response.tool_calls) == 2
        assert provider._client.chat.completions.create.await_count == 2

    def test_web_search_degrades_to_plain_completion(self):
        provider = _provider(_completion(content="From memory."))
        response = _run(provider.complete([{"role": "user", "content": "news?"}], web_search=True))
        assert response.content == "From memory."
        assert "tools" not in provider._client.chat.completions.create.await_args.kwargs
