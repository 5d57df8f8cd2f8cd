# =============================================================================
# Classifier Agent — Topic Flags for One User Message
# =============================================================================
#
# The first and only mandatory model call of a turn. Its Classification
# decides which evidence agents run, which asset classes the ticker
# resolver searches and which status text the user sees first.
#
# DESIGN DECISION: Fatal on failure.
# Without flags there is nothing to dispatch, so every failure here (model
# transport error, invalid JSON, timeout) becomes one ClassificationError.
# The route turns it into a 502 before any stream bytes are sent.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time

from finchat.agents.prompts import CLASSIFICATION_SYSTEM, classification_message
from finchat.agents.schemas import Classification
from finchat.config import settings
from finchat.services.llm import LLMProvider
from finchat.services.structured import generate_object
from finchat.services.tracing import TraceContext

logger = logging.getLogger(__name__)


class ClassificationError(Exception):
    """The classification call failed; the turn cannot continue."""


async def classify(
    llm: LLMProvider,
    prompt: str,
    history: list[dict[str, str]],
    trace: TraceContext | None = None,
) -> Classification:
    start = time.monotonic()
    try:
        classification, _ = await asyncio.wait_for(
            generate_object(
                llm,
                Classification,
                messages=[{"role": "user", "content": classification_message(prompt, history)}],
                system=CLASSIFICATION_SYSTEM,
                trace=trace,
                name="classification",
                temperature=0,
            ),
            timeout=settings.classification_timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        raise ClassificationError(
            f"Classification timed out after {settings.classification_timeout_seconds}s"
        ) from e
    except Exception as e:
        raise ClassificationError(f"Classification failed: {e}") from e

    flags = [name for name, value in classification.topic_flags().items() if value]
    logger.info(
        "Classified in %dms: %s (assets: %s)",
        int((time.monotonic() - start) * 1000),
        flags or "unclassified",
        list(classification.possible_asset_names_or_tickers),
    )
    if trace and classification.is_unclassified:
        trace.add_tag("unclassified")
    return classification
