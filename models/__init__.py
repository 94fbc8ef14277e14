"""Pydantic models for the briefing pipeline.

Document:
    Ingested newsletter email (id, publisher, subject, timestamps, bodies).

Insight / ExtractedInsight / Sentiment:
    Per-email extraction produced by the map phase.

Briefing / NarrativeCluster / SentimentBreakdown / SerendipityItem:
    Synthesized digest produced by the reduce phase and verified
    deterministically.

StoredBriefing / BriefingArchiveItem:
    Persisted run records and their lightweight listing form.

Example:
    >>> from models import Document, Insight
    >>> insight = Insight.failed(document)
    >>> insight.sentiment
    <Sentiment.NEUTRAL: 'neutral'>
"""

from models.document import Document
from models.insight import ExtractedInsight, Insight, Sentiment
from models.briefing import (
    Briefing,
    BriefingArchiveItem,
    Consensus,
    NarrativeCluster,
    SentimentBreakdown,
    SerendipityItem,
    SourceCitation,
    StoredBriefing,
)

__all__ = [
    "Document",
    "ExtractedInsight",
    "Insight",
    "Sentiment",
    "Briefing",
    "BriefingArchiveItem",
    "Consensus",
    "NarrativeCluster",
    "SentimentBreakdown",
    "SerendipityItem",
    "SourceCitation",
    "StoredBriefing",
]
