"""Deterministic verification of synthesized briefings.

The synthesizer's stated cluster sentiment is treated as a claim, not a
fact. verify_briefing() recomputes each cluster's consensus purely from the
sentiments of the insights it cites and always replaces the displayed value
with the recomputed one, so any stored sentiment can be reproduced from the
stored evidence alone.

validate_briefing() then checks the structural contract the synthesizer was
asked to honor (citation counts, section sizes) and records violations as
quality_flags instead of repairing them.
"""

import logging

from models.briefing import (
    Briefing,
    Consensus,
    NarrativeCluster,
    SentimentBreakdown,
    SourceCitation,
)
from models.insight import Insight, Sentiment

logger = logging.getLogger(__name__)

MIN_CLUSTER_SOURCES = 2
EXECUTIVE_SUMMARY_BULLETS = 3
CLUSTER_RANGE = (3, 7)
SERENDIPITY_ITEMS = 2
RADAR_RANGE = (3, 5)


def compute_consensus(positive: int, negative: int, neutral: int) -> Consensus:
    """Label with a strict plurality, or Mixed when there is none.

    Neutral plurality has no consensus label of its own and maps to Mixed,
    as does the zero-citation case.
    """
    if positive > negative and positive > neutral:
        return Consensus.POSITIVE
    if negative > positive and negative > neutral:
        return Consensus.NEGATIVE
    return Consensus.MIXED


def _citation(insight: Insight) -> SourceCitation:
    return SourceCitation(
        document_id=insight.document_id,
        publisher=insight.publisher,
        subject=insight.subject,
        sent_at=insight.sent_at,
        snippet=insight.snippet,
        sentiment=insight.sentiment,
    )


def resolve_sources(cluster: NarrativeCluster, insights_by_id: dict[str, Insight]) -> list[Insight]:
    """Cited insights in citation order, unknown and duplicate ids dropped."""
    resolved = []
    seen = set()
    for source_id in cluster.source_ids:
        if source_id in seen:
            continue
        insight = insights_by_id.get(source_id)
        if insight is None:
            continue
        seen.add(source_id)
        resolved.append(insight)
    return resolved


def verify_cluster(cluster: NarrativeCluster, insights_by_id: dict[str, Insight]) -> NarrativeCluster:
    """Return a copy of cluster with recomputed sentiment and enriched sources.

    Never mutates the input cluster.
    """
    cited = resolve_sources(cluster, insights_by_id)

    positive = sum(1 for i in cited if i.sentiment == Sentiment.POSITIVE)
    negative = sum(1 for i in cited if i.sentiment == Sentiment.NEGATIVE)
    neutral = sum(1 for i in cited if i.sentiment == Sentiment.NEUTRAL)

    calculated = compute_consensus(positive, negative, neutral)
    claimed = cluster.consensus_sentiment

    breakdown = SentimentBreakdown(
        positive=positive,
        negative=negative,
        neutral=neutral,
        total=len(cited),
        calculated_consensus=calculated,
        llm_consensus=claimed,
        override_applied=calculated != claimed,
    )

    return cluster.model_copy(update={
        "consensus_sentiment": calculated,
        "sources": [_citation(i) for i in cited],
        "sentiment_breakdown": breakdown,
    })


def verify_briefing(briefing: Briefing, insights: list[Insight]) -> tuple[Briefing, int]:
    """Verify every cluster in the briefing.

    Returns:
        Tuple of (verified briefing, number of overrides applied)
    """
    insights_by_id = {insight.document_id: insight for insight in insights}

    verified = []
    overrides = 0
    for cluster in briefing.narrative_clusters:
        checked = verify_cluster(cluster, insights_by_id)
        breakdown = checked.sentiment_breakdown
        if breakdown.override_applied:
            overrides += 1
            logger.info(
                "Sentiment override | cluster=%r claimed=%s computed=%s counts=%d/%d/%d",
                cluster.title,
                breakdown.llm_consensus.value if breakdown.llm_consensus else None,
                breakdown.calculated_consensus.value,
                breakdown.positive, breakdown.negative, breakdown.neutral,
            )
        verified.append(checked)

    logger.info("Verification complete | clusters=%d overrides=%d", len(verified), overrides)
    return briefing.model_copy(update={"narrative_clusters": verified}), overrides


def validate_briefing(
    briefing: Briefing,
    insights: list[Insight],
    drop_undersourced: bool = False,
) -> Briefing:
    """Flag structural contract violations on a verified briefing.

    Args:
        briefing: Output of verify_briefing()
        insights: The insight set the briefing was synthesized from
        drop_undersourced: Remove clusters with too few resolvable sources
            instead of only flagging them

    Returns:
        Copy of the briefing with quality_flags appended
    """
    known_ids = {insight.document_id for insight in insights}
    flags = list(briefing.quality_flags)

    clusters = []
    for cluster in briefing.narrative_clusters:
        unknown = [sid for sid in cluster.source_ids if sid not in known_ids]
        if unknown:
            flags.append(f"Cluster '{cluster.title}' cites unknown ids: {', '.join(unknown)}")

        resolved = len({sid for sid in cluster.source_ids if sid in known_ids})
        if resolved < MIN_CLUSTER_SOURCES:
            if drop_undersourced:
                flags.append(
                    f"Dropped cluster '{cluster.title}': {resolved} resolvable sources "
                    f"(minimum {MIN_CLUSTER_SOURCES})"
                )
                continue
            flags.append(
                f"Cluster '{cluster.title}' has {resolved} resolvable sources "
                f"(minimum {MIN_CLUSTER_SOURCES})"
            )
        clusters.append(cluster)

    if len(briefing.executive_summary) != EXECUTIVE_SUMMARY_BULLETS:
        flags.append(
            f"Executive summary has {len(briefing.executive_summary)} bullets "
            f"(expected {EXECUTIVE_SUMMARY_BULLETS})"
        )

    low, high = CLUSTER_RANGE
    if not low <= len(clusters) <= high:
        flags.append(f"Briefing has {len(clusters)} narrative clusters (expected {low}-{high})")

    if len(briefing.serendipity_corner) != SERENDIPITY_ITEMS:
        flags.append(
            f"Serendipity corner has {len(briefing.serendipity_corner)} items "
            f"(expected {SERENDIPITY_ITEMS})"
        )
    for item in briefing.serendipity_corner:
        if item.source_id not in known_ids:
            flags.append(f"Serendipity item '{item.title}' cites unknown id: {item.source_id or '(none)'}")

    low, high = RADAR_RANGE
    if not low <= len(briefing.radar_signals) <= high:
        flags.append(f"Radar has {len(briefing.radar_signals)} signals (expected {low}-{high})")

    for flag in flags[len(briefing.quality_flags):]:
        logger.warning("Quality flag | %s", flag)

    return briefing.model_copy(update={"narrative_clusters": clusters, "quality_flags": flags})
