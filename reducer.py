"""Reduce phase: one synthesis call over the full insight set.

Flow:
    1. Serialize every insight into a single context string
    2. Run the synthesizer once (fatal on failure or timeout)
    3. Parse the output: direct -> structural repair -> placeholder
    4. Normalize the four top-level fields so downstream code can rely on
       their presence and type unconditionally
    5. Coerce list items into typed models, dropping items that are not
       JSON objects. Cluster sources and sentiment breakdowns are left for
       the verifier to compute

The reduce phase requires the complete insight set; it is never started
before the map phase has finished.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from errors import SynthesisError
from mapper import format_insights_for_context
from models.briefing import (
    GENERATION_INCOMPLETE_MESSAGE,
    Briefing,
    NarrativeCluster,
    SerendipityItem,
)
from models.insight import Insight
from tools.json_repair import loads_with_repair

logger = logging.getLogger(__name__)

TOP_LEVEL_FIELDS = ("executive_summary", "narrative_clusters", "serendipity_corner", "radar_signals")

# Filled in by the verifier from the cited insights; model-supplied values are discarded
VERIFIER_FIELDS = ("sources", "sentiment_breakdown")


class Synthesizer(Protocol):
    async def synthesize(self, context: str, insight_count: int) -> str: ...


@dataclass
class ReduceResult:
    """Briefing plus how its text was obtained.

    parse_mode is one of 'empty', 'direct', 'repaired', 'placeholder'.
    """

    briefing: Briefing
    parse_mode: str


def placeholder_shape() -> dict[str, Any]:
    """Raw dict form of Briefing.placeholder()."""
    return Briefing.placeholder().model_dump(include=set(TOP_LEVEL_FIELDS))


def parse_briefing_text(text: str) -> tuple[dict[str, Any], str]:
    """Parse synthesizer text into a briefing-shaped dict without raising.

    Returns:
        Tuple of (data, mode) where mode is 'direct', 'repaired' or
        'placeholder'. data always has the four top-level list fields.
    """
    try:
        value, mode = loads_with_repair(text)
    except (json.JSONDecodeError, RecursionError) as e:
        logger.error("JSON repair failed, using placeholder briefing | error=%s", e)
        return placeholder_shape(), "placeholder"

    if not isinstance(value, dict):
        logger.error("Synthesis output is not a JSON object, using placeholder | type=%s",
                     type(value).__name__)
        return placeholder_shape(), "placeholder"

    return normalize_briefing_shape(value), mode


def normalize_briefing_shape(data: dict[str, Any]) -> dict[str, Any]:
    """Coerce missing or non-list top-level fields into safe defaults."""
    normalized = dict(data)
    if not isinstance(normalized.get("executive_summary"), list):
        logger.warning("Briefing missing executive_summary list; inserting placeholder")
        normalized["executive_summary"] = [GENERATION_INCOMPLETE_MESSAGE]
    for key in TOP_LEVEL_FIELDS[1:]:
        if not isinstance(normalized.get(key), list):
            logger.warning("Briefing missing %s list; using empty list", key)
            normalized[key] = []
    return normalized


def _typed_items(items: list[Any], model: type, label: str, ignore: tuple[str, ...] = ()) -> list:
    typed = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("Dropping non-object %s item | index=%d type=%s", label, i, type(item).__name__)
            continue
        if ignore:
            item = {k: v for k, v in item.items() if k not in ignore}
        try:
            typed.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning("Dropping invalid %s item | index=%d errors=%d", label, i, e.error_count())
    return typed


def _strings(items: list[Any]) -> list[str]:
    return [str(item) for item in items if item is not None and not isinstance(item, (dict, list))]


def build_briefing(data: dict[str, Any]) -> Briefing:
    """Build a typed Briefing from a normalized dict."""
    return Briefing(
        executive_summary=_strings(data["executive_summary"]),
        narrative_clusters=_typed_items(
            data["narrative_clusters"], NarrativeCluster, "cluster", ignore=VERIFIER_FIELDS
        ),
        serendipity_corner=_typed_items(data["serendipity_corner"], SerendipityItem, "serendipity"),
        radar_signals=_strings(data["radar_signals"]),
    )


async def reduce_insights(
    insights: list[Insight],
    synthesizer: Synthesizer,
    timeout: float | None = None,
) -> ReduceResult:
    """Synthesize the complete insight set into one Briefing.

    Args:
        insights: Every insight produced by the map phase
        synthesizer: Narrative synthesizer
        timeout: Synthesis call timeout in seconds (None = no timeout)

    Raises:
        SynthesisError: The call failed, timed out, or returned no text
    """
    if not insights:
        logger.info("Reduce phase skipped | insights=0")
        return ReduceResult(briefing=Briefing.empty_window(), parse_mode="empty")

    logger.info("Reduce phase started | insights=%d", len(insights))
    context = format_insights_for_context(insights)

    try:
        text = await asyncio.wait_for(
            synthesizer.synthesize(context, len(insights)), timeout=timeout
        )
    except asyncio.TimeoutError as e:
        raise SynthesisError(f"Synthesis timed out after {timeout}s") from e

    if not text or not text.strip():
        raise SynthesisError("Empty response from synthesizer")

    data, mode = parse_briefing_text(text)
    briefing = build_briefing(data)

    logger.info(
        "Reduce phase complete | mode=%s summary=%d clusters=%d serendipity=%d radar=%d",
        mode,
        len(briefing.executive_summary),
        len(briefing.narrative_clusters),
        len(briefing.serendipity_corner),
        len(briefing.radar_signals),
    )
    return ReduceResult(briefing=briefing, parse_mode=mode)
