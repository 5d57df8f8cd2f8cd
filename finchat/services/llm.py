# =============================================================================
# LLM Providers — Completion, Streaming & Tool Calls
# =============================================================================
#
# Common interface for the three call shapes the chat pipeline needs:
#
#   1. complete()            — one-shot text (optionally web-search grounded)
#   2. stream()              — incremental text deltas (final answer only)
#   3. complete_with_tools() — bounded tool-calling loop (market-data agent)
#
# Schema-constrained generation is layered on top of complete()/stream() in
# structured.py, so providers stay thin.
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Test doubles only need the methods a stage actually calls; an AsyncMock
# or a small scripted fake satisfies the same contract.
#
# DESIGN DECISION: Native SDKs over LangChain wrappers.
# Tool-calling and server-side web search differ per provider (message
# shapes, stop reasons). Handling them directly in each provider keeps the
# differences in one place instead of leaking into the agents.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — Claude via native Anthropic SDK
#   ├── OpenAICompatibleProvider — Any OpenAI-compatible API
#   ├── get_llm_provider()       — Singleton factory, reads from config
#   ├── get_stage_provider()     — Per-stage model override
#   └── create_provider_from_id() — Non-singleton factory for model choice
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel, ValidationError

from finchat.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class ToolInvocation:
    """Record of one tool call made during complete_with_tools()."""

    name: str
    arguments: dict[str, Any]
    result: Any


@dataclass
class LLMResponse:
    """One model call (or tool loop) reduced to text plus token usage."""

    content: str
    model: str             # As reported by the provider
    input_tokens: int      # Summed across tool-loop steps
    output_tokens: int
    tool_calls: list[ToolInvocation] = field(default_factory=list)


@dataclass
class Tool:
    """
    A function the model may call during complete_with_tools().

    The pydantic input model doubles as the JSON schema sent to the
    provider and as the validator for the arguments the model returns.
    """

    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[[Any], Awaitable[Any]]

    def json_schema(self) -> dict[str, Any]:
        return self.input_model.model_json_schema()


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """
    The call surface every pipeline stage programs against.

    Both Anthropic and OpenAI-compatible implementations provide all three
    methods. Stages depend only on the methods they call.
    """

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        web_search: bool = False,
    ) -> LLMResponse:
        """
        One-shot completion.

        Args:
            messages: Conversation messages as dicts with "role" and "content".
                Roles: "user", "assistant" (pass system prompts via the system param).
            system: System prompt for the LLM.
            temperature: Override sampling temperature (default from config).
            max_tokens: Override max output tokens (default from config).
            web_search: Ground the answer on live web search results when
                the provider supports it.

        Returns:
            LLMResponse with generated text and usage metrics.
        """
        ...

    def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Yield text deltas as the model produces them."""
        ...

    async def complete_with_tools(
        self,
        messages: list[dict[str, str]],
        tools: list[Tool],
        system: str | None = None,
        max_steps: int | None = None,
    ) -> LLMResponse:
        """
        Run a tool-calling loop until the model answers in plain text.

        The loop stops after `max_steps` model turns; whatever text the
        last turn produced is returned.
        """
        ...


# ---------------------------------------------------------------------------
# Shared Tool Execution
# ---------------------------------------------------------------------------


async def _invoke_tool(
    tool_map: dict[str, Tool],
    name: str,
    raw_arguments: dict[str, Any],
) -> ToolInvocation:
    """
    Validate arguments and run one tool.

    Tool failures are returned to the model as an error payload rather than
    raised, so one bad call does not end the loop.
    """
    tool = tool_map.get(name)
    if tool is None:
        return ToolInvocation(name, raw_arguments, {"error": f"Unknown tool '{name}'"})

    try:
        arguments = tool.input_model.model_validate(raw_arguments)
    except ValidationError as e:
        return ToolInvocation(name, raw_arguments, {"error": f"Invalid arguments: {e}"})

    try:
        result = await tool.handler(arguments)
    except Exception as e:
        logger.warning("Tool %s failed: %s", name, e)
        result = {"error": str(e)}

    logger.info("Tool %s called with %s", name, raw_arguments)
    return ToolInvocation(name, raw_arguments, result)


def _dump_result(result: Any) -> str:
    return json.dumps(result, default=str)


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, NOT as a message with role "system".

    Web search uses Anthropic's server-side `web_search` tool; the model
    runs the searches itself and the response interleaves text blocks with
    search result blocks. Only the text blocks are kept.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    def _base_kwargs(
        self,
        messages: list[dict[str, str]],
        system: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict:
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": temperature if temperature is not None else self._temperature,
        }
        if system:
            kwargs["system"] = system
        return kwargs

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        web_search: bool = False,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        kwargs = self._base_kwargs(messages, system, temperature, max_tokens)
        if web_search:
            kwargs["tools"] = [{
                "type": "web_search_20250305",
                "name": "web_search",
                "max_uses": settings.web_search_max_uses,
            }]

        response = await self._client.messages.create(**kwargs)

        # Search-grounded answers arrive as several text blocks
        content = "".join(
            block.text for block in response.content if block.type == "text"
        )

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    async def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream text deltas from Claude."""
        kwargs = self._base_kwargs(messages, system, temperature, max_tokens)
        async with self._client.messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                yield text

    async def complete_with_tools(
        self,
        messages: list[dict[str, str]],
        tools: list[Tool],
        system: str | None = None,
        max_steps: int | None = None,
    ) -> LLMResponse:
        """Run Claude's tool_use / tool_result loop."""
        tool_map = {tool.name: tool for tool in tools}
        conversation: list[dict] = list(messages)
        invocations: list[ToolInvocation] = []
        input_tokens = output_tokens = 0
        model = self._model
        content = ""

        for _ in range(max_steps or settings.tool_agent_max_steps):
            kwargs = self._base_kwargs(conversation, system, None, None)
            kwargs["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.json_schema(),
                }
                for tool in tools
            ]
            response = await self._client.messages.create(**kwargs)
            input_tokens += response.usage.input_tokens
            output_tokens += response.usage.output_tokens
            model = response.model

            content = "".join(
                block.text for block in response.content if block.type == "text"
            )
            tool_uses = [b for b in response.content if b.type == "tool_use"]
            if response.stop_reason != "tool_use" or not tool_uses:
                break

            conversation.append({
                "role": "assistant",
                "content": [b.model_dump(exclude_none=True) for b in response.content],
            })
            results = []
            for block in tool_uses:
                invocation = await _invoke_tool(tool_map, block.name, dict(block.input))
                invocations.append(invocation)
                results.append({
                    "type": "tool_result",
                    "tool_use_id": block.id,
                    "content": _dump_result(invocation.result),
                })
            conversation.append({"role": "user", "content": results})

        return LLMResponse(
            content=content,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            tool_calls=invocations,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible (Gemini, DeepSeek, Qwen, etc.)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Chat Completions provider (OpenAI itself, or any server speaking the
    same wire format via LLM_BASE_URL).

    Chat Completions has no portable web search tool, so web_search=True
    degrades to a plain completion (logged once per call).
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    @staticmethod
    def _with_system(messages: list[dict], system: str | None) -> list[dict]:
        # OpenAI: system prompt goes as the first message
        all_messages: list[dict] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)
        return all_messages

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        web_search: bool = False,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        if web_search:
            logger.info(
                "Web search grounding not available for %s; "
                "answering from model knowledge", self._model,
            )

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=self._with_system(messages, system),
            max_tokens=max_tokens or self._max_tokens,
            temperature=temperature if temperature is not None else self._temperature,
        )

        content = response.choices[0].message.content or ""

        usage = response.usage
        return LLMResponse(
            content=content,
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )

    async def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream text deltas from an OpenAI-compatible API."""
        stream = await self._client.chat.completions.create(
            model=self._model,
            messages=self._with_system(messages, system),
            max_tokens=max_tokens or self._max_tokens,
            temperature=temperature if temperature is not None else self._temperature,
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta

    async def complete_with_tools(
        self,
        messages: list[dict[str, str]],
        tools: list[Tool],
        system: str | None = None,
        max_steps: int | None = None,
    ) -> LLMResponse:
        """Run the Chat Completions function-calling loop."""
        tool_map = {tool.name: tool for tool in tools}
        conversation = self._with_system(messages, system)
        tool_specs = [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.json_schema(),
                },
            }
            for tool in tools
        ]
        invocations: list[ToolInvocation] = []
        input_tokens = output_tokens = 0
        model = self._model
        content = ""

        for _ in range(max_steps or settings.tool_agent_max_steps):
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=conversation,
                tools=tool_specs,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
            if response.usage:
                input_tokens += response.usage.prompt_tokens
                output_tokens += response.usage.completion_tokens
            model = response.model or self._model

            message = response.choices[0].message
            content = message.content or ""
            if not message.tool_calls:
                break

            conversation.append(message.model_dump(exclude_none=True))
            for call in message.tool_calls:
                try:
                    raw_arguments = json.loads(call.function.arguments or "{}")
                except json.JSONDecodeError:
                    raw_arguments = {}
                invocation = await _invoke_tool(tool_map, call.function.name, raw_arguments)
                invocations.append(invocation)
                conversation.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": _dump_result(invocation.result),
                })

        return LLMResponse(
            content=content,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            tool_calls=invocations,
        )


# ---------------------------------------------------------------------------
# Factory Functions
# ---------------------------------------------------------------------------

# Process-wide default and per-stage overrides, built on first use
_provider: AnthropicProvider | OpenAICompatibleProvider | None = None
_stage_providers: dict[str, AnthropicProvider | OpenAICompatibleProvider] = {}


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Default provider for every stage without its own model override.

    LLM_PROVIDER=openai_compatible selects Chat Completions; anything else
    means Anthropic.
    """
    global _provider
    if _provider is None:
        if settings.llm_provider == "openai_compatible":
            _provider = OpenAICompatibleProvider()
        else:
            _provider = AnthropicProvider()
    return _provider


_STAGE_MODEL_SETTINGS = {
    "classification": "classification_model",
    "query_agent": "query_agent_model",
    "portfolio_analysis": "portfolio_analysis_model",
    "web_research": "web_research_model",
    "tool_agent": "tool_agent_model",
    "final_answer": "final_answer_model",
}


def get_stage_provider(stage: str) -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Return the provider for one pipeline stage.

    Stages without a model override share the default singleton. Stages
    with an override get their own cached instance of the same provider
    type, pointed at the override model.
    """
    setting_name = _STAGE_MODEL_SETTINGS.get(stage)
    if setting_name is None:
        raise ValueError(f"Unknown pipeline stage '{stage}'")

    model = getattr(settings, setting_name)
    if not model or model == settings.llm_model:
        return get_llm_provider()

    if stage not in _stage_providers:
        if settings.llm_provider == "openai_compatible":
            _stage_providers[stage] = OpenAICompatibleProvider(model=model)
        else:
            _stage_providers[stage] = AnthropicProvider(model=model)
    return _stage_providers[stage]


# ---------------------------------------------------------------------------
# Non-Singleton Factory — For a client-selected chat model
# ---------------------------------------------------------------------------
# The chat request may name a model ("anthropic/claude-opus-4-1"). That
# model answers only the final synthesis; every other stage keeps its
# configured provider.
# ---------------------------------------------------------------------------


_KNOWN_PROVIDER_TYPES = {"anthropic", "openai_compatible"}


def _parse_provider_id(
    provider_id: str,
) -> tuple[str, str, str | None]:
    """
    Parse a provider_id string into (provider_type, model, base_url).

    Formats supported:
        "anthropic/claude-sonnet-4-6"
            → ("anthropic", "claude-sonnet-4-6", None)
        "openai_compatible/deepseek-chat@https://api.deepseek.com/v1"
            → ("openai_compatible", "deepseek-chat", "https://api.deepseek.com/v1")

    Raises:
        ValueError: If the format is unrecognisable or provider type unknown.
    """
    if "/" not in provider_id:
        raise ValueError(
            f"Invalid provider_id '{provider_id}'. "
            "Expected format: 'provider_type/model' or "
            "'provider_type/model@base_url'"
        )

    provider_type, rest = provider_id.split("/", 1)

    base_url: str | None = None
    if "@" in rest:
        model, base_url = rest.split("@", 1)
    else:
        model = rest

    if provider_type not in _KNOWN_PROVIDER_TYPES:
        raise ValueError(
            f"Unknown provider type '{provider_type}'. "
            f"Supported types: {sorted(_KNOWN_PROVIDER_TYPES)}"
        )

    return provider_type, model, base_url


def create_provider_from_id(
    provider_id: str,
    api_key: str | None = None,
) -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Create a fresh, non-singleton LLM provider from a provider ID string.

    Args:
        provider_id: Provider string (see _parse_provider_id for format).
        api_key: Optional API key override. If None, reads from env.

    Raises:
        ValueError: If provider_id is invalid or API key is missing.
    """
    provider_type, model, base_url = _parse_provider_id(provider_id)

    if provider_type == "anthropic":
        return AnthropicProvider(api_key=api_key, model=model)

    return OpenAICompatibleProvider(
        api_key=api_key, model=model, base_url=base_url,
    )
