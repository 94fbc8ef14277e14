import asyncio
import json

import pytest

from errors import SynthesisError
from models.briefing import (
    EMPTY_WINDOW_MESSAGE,
    GENERATION_INCOMPLETE_MESSAGE,
    PARSING_INCOMPLETE_MESSAGE,
)
from reducer import normalize_briefing_shape, parse_briefing_text, reduce_insights
from tests.fakes import FakeSynthesizer, briefing_json, make_insight


def _insights(n=4):
    return [make_insight(f"d{i}") for i in range(1, n + 1)]


def test_empty_insight_set_short_circuits():
    synthesizer = FakeSynthesizer()

    result = asyncio.run(reduce_insights([], synthesizer))

    assert result.parse_mode == "empty"
    assert result.briefing.executive_summary == [EMPTY_WINDOW_MESSAGE]
    assert result.briefing.narrative_clusters == []
    assert synthesizer.calls == []


def test_well_formed_output_parses_directly():
    synthesizer = FakeSynthesizer()

    result = asyncio.run(reduce_insights(_insights(), synthesizer))

    assert result.parse_mode == "direct"
    assert len(result.briefing.executive_summary) == 3
    assert [c.source_ids for c in result.briefing.narrative_clusters] == [["d1", "d2"], ["d3", "d4"]]
    context, count = synthesizer.calls[0]
    assert count == 4
    assert "ID: d4" in context


def test_truncated_output_is_repaired():
    full = briefing_json(["d1", "d2", "d3", "d4"])
    truncated = full[: full.index('"serendipity_corner"') + 30]

    result = asyncio.run(reduce_insights(_insights(), FakeSynthesizer(response=truncated)))

    assert result.parse_mode == "repaired"
    assert result.briefing.executive_summary == ["Point one", "Point two", "Point three"]
    assert len(result.briefing.narrative_clusters) == 2
    assert result.briefing.radar_signals == []


def test_unrecoverable_output_uses_placeholder():
    synthesizer = FakeSynthesizer(response="I cannot produce that briefing.")

    result = asyncio.run(reduce_insights(_insights(), synthesizer))

    assert result.parse_mode == "placeholder"
    assert result.briefing.executive_summary == [PARSING_INCOMPLETE_MESSAGE] * 3
    assert result.briefing.narrative_clusters == []
    assert result.briefing.serendipity_corner == []
    assert result.briefing.radar_signals == []


def test_non_object_json_uses_placeholder():
    data, mode = parse_briefing_text('["just", "a", "list"]')

    assert mode == "placeholder"
    assert data["executive_summary"] == [PARSING_INCOMPLETE_MESSAGE] * 3


def test_missing_or_mistyped_fields_are_normalized():
    data = normalize_briefing_shape({"narrative_clusters": "oops", "radar_signals": ["Fed"]})

    assert data["executive_summary"] == [GENERATION_INCOMPLETE_MESSAGE]
    assert data["narrative_clusters"] == []
    assert data["serendipity_corner"] == []
    assert data["radar_signals"] == ["Fed"]


def test_non_object_list_items_are_dropped():
    text = json.dumps({
        "executive_summary": ["a", "b", "c"],
        "narrative_clusters": ["not a cluster", {"title": "Real", "source_ids": "d1"}],
        "serendipity_corner": [42],
        "radar_signals": ["Fed", 7],
    })

    result = asyncio.run(reduce_insights(_insights(), FakeSynthesizer(response=text)))

    clusters = result.briefing.narrative_clusters
    assert [c.title for c in clusters] == ["Real"]
    assert clusters[0].source_ids == ["d1"]
    assert result.briefing.serendipity_corner == []
    assert result.briefing.radar_signals == ["Fed", "7"]


def test_synthesis_failure_propagates():
    synthesizer = FakeSynthesizer(error=SynthesisError("provider down"))

    with pytest.raises(SynthesisError, match="provider down"):
        asyncio.run(reduce_insights(_insights(), synthesizer))


def test_synthesis_timeout_is_fatal():
    synthesizer = FakeSynthesizer(delay=1.0)

    with pytest.raises(SynthesisError, match="timed out"):
        asyncio.run(reduce_insights(_insights(), synthesizer, timeout=0.05))


def test_blank_synthesis_output_is_fatal():
    with pytest.raises(SynthesisError):
        asyncio.run(reduce_insights(_insights(), FakeSynthesizer(response="   ")))


@pytest.mark.parametrize("extra", [
    {"sources": ["d1", "d2"]},
    {"sentiment_breakdown": {"positive": 2}},
])
def test_model_supplied_verifier_fields_are_ignored(extra):
    cluster = {"title": "Rates", "source_ids": ["d1", "d2"], **extra}
    text = json.dumps({
        "executive_summary": ["a", "b", "c"],
        "narrative_clusters": [cluster],
        "serendipity_corner": [],
        "radar_signals": [],
    })

    result = asyncio.run(reduce_insights(_insights(), FakeSynthesizer(response=text)))

    clusters = result.briefing.narrative_clusters
    assert [c.title for c in clusters] == ["Rates"]
    assert clusters[0].source_ids == ["d1", "d2"]
    assert clusters[0].sources == []
    assert clusters[0].sentiment_breakdown is None


def test_deeply_nested_output_uses_placeholder():
    result = asyncio.run(reduce_insights(_insights(), FakeSynthesizer(response="[" * 100000)))

    assert result.parse_mode == "placeholder"
    assert result.briefing.executive_summary == [PARSING_INCOMPLETE_MESSAGE] * 3
