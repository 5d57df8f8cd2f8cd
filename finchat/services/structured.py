# =============================================================================
# Structured Generation — Schema-Constrained Model Output
# =============================================================================
#
# Four stages ask the model for an object, not prose: classification, the
# per-domain SQL candidates, portfolio analysis and the final answer. This
# module layers that on top of the provider's plain text interface:
#
#   generate_object() — one completion, parsed and validated
#   stream_object()   — streamed completion, yielding growing dict snapshots
#                       parsed with pydantic-core's partial JSON mode, then
#                       the validated object at the end
#
# DESIGN DECISION: Schema in the system prompt, validation in pydantic.
# Both providers follow a JSON Schema given in the prompt reliably enough,
# and a single validation path works for Anthropic and any OpenAI-compatible
# backend alike. A reply that does not validate raises StructuredOutputError;
# each caller decides whether that is fatal (classification) or just "no
# evidence from this source" (query agents).
#
# DESIGN DECISION: Partial JSON via pydantic-core.
# `from_json(..., allow_partial=True)` parses a truncated document into the
# largest valid prefix. Incomplete strings are dropped in that mode, except
# for the fields named in `stream_fields`, which are re-read with
# allow_partial="trailing-strings" so long text can be shown as it arrives.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Iterable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic_core import from_json

from finchat.services.llm import LLMProvider, LLMResponse
from finchat.services.tracing import TraceContext

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class StructuredOutputError(Exception):
    """The model's reply could not be parsed into the requested schema."""

    def __init__(self, schema_name: str, message: str, raw: str = "") -> None:
        super().__init__(f"{schema_name}: {message}")
        self.schema_name = schema_name
        self.raw = raw


# ---------------------------------------------------------------------------
# Prompt & Parsing Helpers
# ---------------------------------------------------------------------------


def schema_instructions(schema: type[BaseModel]) -> str:
    """System-prompt suffix describing the JSON the model must return."""
    json_schema = json.dumps(schema.model_json_schema(by_alias=True), indent=2)
    return (
        f"Respond with ONLY a single JSON object matching the {schema.__name__} "
        "schema below. No markdown fences, no commentary before or after it.\n"
        f"{json_schema}"
    )


def _with_schema(system: str | None, schema: type[BaseModel]) -> str:
    if system:
        return f"{system}\n\n{schema_instructions(schema)}"
    return schema_instructions(schema)


def extract_json(text: str) -> str:
    """
    Cut the JSON object out of a model reply.

    Tolerates ```json fences and stray prose around the object by taking
    everything from the first "{" to the last "}".
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return text.strip()
    return text[start:end + 1]


def _validate(schema: type[ModelT], raw: str) -> ModelT:
    try:
        return schema.model_validate_json(extract_json(raw))
    except ValidationError as e:
        raise StructuredOutputError(schema.__name__, str(e), raw) from e


# ---------------------------------------------------------------------------
# Blocking Generation
# ---------------------------------------------------------------------------


async def generate_object(
    llm: LLMProvider,
    schema: type[ModelT],
    *,
    messages: list[dict[str, str]],
    system: str | None = None,
    trace: TraceContext | None = None,
    name: str | None = None,
    temperature: float | None = None,
) -> tuple[ModelT, LLMResponse]:
    """
    Generate one object of `schema`.

    Returns the validated object and the raw provider response (for usage
    accounting). Raises StructuredOutputError when the reply does not
    validate; transport errors from the provider propagate unchanged.
    """
    generation_name = name or schema.__name__
    generation = trace.generation(generation_name, input=messages[-1]["content"]) if trace else None

    try:
        response = await llm.complete(
            messages=messages,
            system=_with_schema(system, schema),
            temperature=temperature,
        )
        result = _validate(schema, response.content)
    except Exception as e:
        if generation:
            generation.end(error=e)
        raise

    if generation:
        generation.end(
            output=result.model_dump(by_alias=True),
            usage=(response.input_tokens, response.output_tokens),
        )
    logger.debug("%s generated by %s", generation_name, response.model)
    return result, response


# ---------------------------------------------------------------------------
# Streamed Generation
# ---------------------------------------------------------------------------


def parse_partial(buffer: str, stream_fields: Iterable[str] = ()) -> dict[str, Any] | None:
    """
    Parse a possibly truncated JSON object.

    Returns None while no object has started or the text cannot be parsed
    yet. Top-level fields in `stream_fields` keep their incomplete trailing
    string; everything else only appears once its string is closed.
    """
    start = buffer.find("{")
    if start == -1:
        return None
    document = buffer[start:]

    try:
        snapshot = from_json(document, allow_partial=True)
    except ValueError:
        return None
    if not isinstance(snapshot, dict):
        return None

    stream_fields = tuple(stream_fields)
    if stream_fields:
        try:
            with_trailing = from_json(document, allow_partial="trailing-strings")
        except ValueError:
            with_trailing = {}
        if isinstance(with_trailing, dict):
            for key in stream_fields:
                value = with_trailing.get(key)
                if isinstance(value, str):
                    snapshot[key] = value
    return snapshot


async def stream_object(
    llm: LLMProvider,
    schema: type[ModelT],
    *,
    messages: list[dict[str, str]],
    system: str | None = None,
    stream_fields: Iterable[str] = (),
) -> AsyncIterator[dict[str, Any] | ModelT]:
    """
    Stream growing snapshots of a `schema` object.

    Yields plain dicts while text arrives (only when the snapshot changed)
    and finally one validated `schema` instance. Raises
    StructuredOutputError if the complete reply does not validate.
    """
    stream_fields = tuple(stream_fields)
    buffer = ""
    last: dict[str, Any] | None = None

    async for delta in llm.stream(messages=messages, system=_with_schema(system, schema)):
        buffer += delta
        snapshot = parse_partial(buffer, stream_fields)
        if snapshot is not None and snapshot != last:
            last = snapshot
            yield snapshot

    yield _validate(schema, buffer)
