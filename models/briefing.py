"""Briefing models produced by the reduce phase.

Model Hierarchy:
    Briefing: The synthesized digest (summary, clusters, serendipity, radar)
    NarrativeCluster: One synthesized theme citing at least two emails
    SentimentBreakdown: Counts behind a cluster's consensus, recomputed
        from the cited insights and authoritative over the model's claim
    StoredBriefing: A Briefing plus window, provenance and identity;
        one row per pipeline run, never updated
    BriefingArchiveItem: Lightweight listing row (first summary bullet only)

Parsing Strategy:
    Synthesis output is untrusted. Item-level validators coerce loose JSON
    (missing fields, numbers for strings, single strings for lists) into
    these models instead of rejecting the whole briefing.
"""

import logging
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from models.insight import Sentiment

logger = logging.getLogger(__name__)

EMPTY_WINDOW_MESSAGE = "No new newsletters were processed in this time window."
PARSING_INCOMPLETE_MESSAGE = "[Briefing generation encountered parsing issues]"
GENERATION_INCOMPLETE_MESSAGE = "[Briefing generation incomplete]"


class Consensus(str, Enum):
    """Cluster-level sentiment consensus."""

    POSITIVE = "Positive"
    NEGATIVE = "Negative"
    MIXED = "Mixed"


def normalize_consensus(value: str | Consensus | None) -> Consensus | None:
    """Map a claimed consensus onto Consensus, or None if unrecognized."""
    if isinstance(value, Consensus):
        return value
    if value is None:
        return None
    raw = str(value).strip().lower()
    for consensus in Consensus:
        if consensus.value.lower() == raw:
            return consensus
    return None


class SourceCitation(BaseModel):
    """Enriched citation attached to a cluster for verification."""

    document_id: str
    publisher: str
    subject: str
    sent_at: str
    snippet: str
    sentiment: Sentiment


class SentimentBreakdown(BaseModel):
    """Sentiment arithmetic for one cluster.

    calculated_consensus is derived purely from the counts and is the only
    sentiment field a consumer should trust. llm_consensus records what the
    synthesizer claimed (None if it claimed nothing recognizable).
    """

    positive: int = 0
    negative: int = 0
    neutral: int = 0
    total: int = 0
    calculated_consensus: Consensus
    llm_consensus: Consensus | None = None
    override_applied: bool = False


def _as_str(value) -> str:
    return "" if value is None else str(value)


class NarrativeCluster(BaseModel):
    """A synthesized narrative grounded in two or more insights."""

    title: str = ""
    synthesis: str = ""
    consensus_sentiment: Consensus | None = None
    counter_point: str | None = None
    source_ids: list[str] = Field(default_factory=list)
    sources: list[SourceCitation] = Field(default_factory=list)
    sentiment_breakdown: SentimentBreakdown | None = None

    @field_validator("title", "synthesis", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return _as_str(value)

    @field_validator("consensus_sentiment", mode="before")
    @classmethod
    def _normalize_consensus(cls, value):
        return normalize_consensus(value)

    @field_validator("counter_point", mode="before")
    @classmethod
    def _coerce_counter_point(cls, value):
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("source_ids", mode="before")
    @classmethod
    def _coerce_source_ids(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value if v is not None]
        return []


class SerendipityItem(BaseModel):
    """A single-source insight that does not fit any cluster."""

    title: str = ""
    insight: str = ""
    source_id: str = ""
    publisher: str = ""

    @field_validator("title", "insight", "source_id", "publisher", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return _as_str(value)


class Briefing(BaseModel):
    """The synthesized intelligence briefing.

    Attributes:
        executive_summary: 3 bullets capturing dominant themes
        narrative_clusters: 3-7 clusters
        serendipity_corner: exactly 2 single-source items
        radar_signals: 3-5 emerging terms/entities
        quality_flags: Structural contract violations found after synthesis
    """

    executive_summary: list[str] = Field(default_factory=list)
    narrative_clusters: list[NarrativeCluster] = Field(default_factory=list)
    serendipity_corner: list[SerendipityItem] = Field(default_factory=list)
    radar_signals: list[str] = Field(default_factory=list)
    quality_flags: list[str] = Field(default_factory=list)

    @classmethod
    def empty_window(cls) -> "Briefing":
        """Briefing for a window that contained no emails."""
        return cls(executive_summary=[EMPTY_WINDOW_MESSAGE])

    @classmethod
    def placeholder(cls) -> "Briefing":
        """Minimal briefing used when synthesis output is unrecoverable."""
        return cls(executive_summary=[PARSING_INCOMPLETE_MESSAGE] * 3)


class StoredBriefing(BaseModel):
    """One persisted pipeline run. Immutable once inserted."""

    model_config = {"frozen": True}

    briefing_id: str
    generated_at: datetime
    time_window_start: datetime
    time_window_end: datetime
    content: Briefing
    email_count: int
    model_version: str | None = None


class BriefingArchiveItem(BaseModel):
    """Archive listing row (no full content)."""

    briefing_id: str
    generated_at: datetime
    email_count: int
    executive_summary: str | None = None
