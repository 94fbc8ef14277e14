"""Markdown rendering of stored briefings."""

from models.briefing import NarrativeCluster, StoredBriefing

_DATE_FMT = "%Y-%m-%d %H:%M UTC"


def _render_cluster(index: int, cluster: NarrativeCluster) -> list[str]:
    lines = [f"### {index}. {cluster.title or 'Untitled narrative'}", ""]
    if cluster.synthesis:
        lines.extend([cluster.synthesis, ""])

    sentiment = cluster.consensus_sentiment.value if cluster.consensus_sentiment else "Unknown"
    breakdown = cluster.sentiment_breakdown
    if breakdown is not None:
        detail = (
            f"{breakdown.positive} positive, {breakdown.negative} negative, "
            f"{breakdown.neutral} neutral"
        )
        if breakdown.override_applied:
            claimed = breakdown.llm_consensus.value if breakdown.llm_consensus else "none"
            detail += f"; corrected from {claimed}"
        lines.append(f"**Consensus:** {sentiment} ({detail})")
    else:
        lines.append(f"**Consensus:** {sentiment}")

    if cluster.counter_point:
        lines.append(f"**Counter-point:** {cluster.counter_point}")

    if cluster.sources:
        lines.extend(["", "**Sources:**"])
        for source in cluster.sources:
            lines.append(
                f"- {source.publisher}: *{source.subject}* ({source.sent_at[:10]}, {source.sentiment.value})"
            )
    elif cluster.source_ids:
        lines.extend(["", f"**Sources:** {', '.join(cluster.source_ids)}"])

    lines.append("")
    return lines


def render_briefing_markdown(stored: StoredBriefing) -> str:
    """Render a stored briefing as a Markdown document."""
    briefing = stored.content
    lines = [
        f"# Intelligence Briefing: {stored.generated_at.strftime('%Y-%m-%d')}",
        "",
        f"**Window:** {stored.time_window_start.strftime(_DATE_FMT)} to "
        f"{stored.time_window_end.strftime(_DATE_FMT)}",
        f"**Emails:** {stored.email_count}",
        f"**Briefing ID:** {stored.briefing_id}",
    ]
    if stored.model_version:
        lines.append(f"**Models:** {stored.model_version}")

    lines.extend(["", "## Executive Summary", ""])
    lines.extend(f"- {bullet}" for bullet in briefing.executive_summary)

    if briefing.narrative_clusters:
        lines.extend(["", "## Narratives", ""])
        for index, cluster in enumerate(briefing.narrative_clusters, start=1):
            lines.extend(_render_cluster(index, cluster))

    if briefing.serendipity_corner:
        lines.extend(["", "## Serendipity Corner", ""])
        for item in briefing.serendipity_corner:
            publisher = f" ({item.publisher})" if item.publisher else ""
            lines.append(f"- **{item.title}**{publisher}: {item.insight}")

    if briefing.radar_signals:
        lines.extend(["", "## Radar", ""])
        lines.append(", ".join(briefing.radar_signals))

    if briefing.quality_flags:
        lines.extend(["", "## Quality Flags", ""])
        lines.extend(f"- {flag}" for flag in briefing.quality_flags)

    return "\n".join(lines).rstrip() + "\n"
