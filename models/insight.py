"""Insight models produced by the map phase.

One Insight is produced per email. The extractor only supplies the analytic
fields (themes, entities, sentiment, summary, key claims); identity fields
and the snippet are always copied from the Document so that a failed
extraction still yields a traceable insight.

Sentiment Design:
    Every insight carries one of three lowercase labels. Labels coming back
    from the model are normalized (case, common aliases); anything
    unrecognized becomes NEUTRAL rather than failing validation.
"""

import logging
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from models.document import Document

logger = logging.getLogger(__name__)

EXTRACTION_FAILED_MARKER = "[Extraction failed]"


class Sentiment(str, Enum):
    """Per-email sentiment toward its main topic."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


_SENTIMENT_ALIASES: dict[str, Sentiment] = {
    "pos": Sentiment.POSITIVE,
    "bullish": Sentiment.POSITIVE,
    "optimistic": Sentiment.POSITIVE,
    "neg": Sentiment.NEGATIVE,
    "bearish": Sentiment.NEGATIVE,
    "pessimistic": Sentiment.NEGATIVE,
    "neutral": Sentiment.NEUTRAL,
    "mixed": Sentiment.NEUTRAL,
}


def normalize_sentiment(value: str | Sentiment | None) -> Sentiment:
    """Normalize a raw sentiment label into a supported Sentiment."""
    if isinstance(value, Sentiment):
        return value
    if value is None:
        return Sentiment.NEUTRAL
    raw = str(value).strip().lower()
    if not raw:
        return Sentiment.NEUTRAL
    try:
        return Sentiment(raw)
    except ValueError:
        mapped = _SENTIMENT_ALIASES.get(raw)
        if mapped is not None:
            return mapped
        logger.warning("Unknown sentiment label; defaulting to neutral | value=%s", value)
        return Sentiment.NEUTRAL


def _string_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return []


class ExtractedInsight(BaseModel):
    """The JSON object the extractor model is asked to return."""

    themes: list[str] = Field(default_factory=list, description="2-5 key topics")
    entities: list[str] = Field(default_factory=list, description="People, orgs, tickers, countries")
    sentiment: Sentiment = Field(default=Sentiment.NEUTRAL, description="positive, negative or neutral")
    summary: str = Field(default="", description="1-2 sentence summary")
    key_claims: list[str] = Field(default_factory=list, description="2-3 main claims")

    @field_validator("themes", "entities", "key_claims", mode="before")
    @classmethod
    def _coerce_lists(cls, value):
        return _string_list(value)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _normalize_sentiment(cls, value):
        return normalize_sentiment(value)

    @field_validator("summary", mode="before")
    @classmethod
    def _coerce_summary(cls, value):
        return "" if value is None else str(value)


class Insight(BaseModel):
    """Structured extraction for one email.

    Attributes:
        document_id: Id of the email this insight belongs to (never changes)
        publisher: Sender address
        subject: Subject line
        sent_at: ISO timestamp the email was sent
        snippet: Locally computed preview of the email body
        themes: Key topics
        entities: Named entities
        sentiment: positive / negative / neutral
        summary: 1-2 sentence summary (or the extraction-failed marker)
        key_claims: 2-3 main claims
    """

    model_config = {"frozen": True}

    document_id: str
    publisher: str
    subject: str = ""
    sent_at: str = ""
    snippet: str = ""
    themes: list[str] = Field(default_factory=list)
    entities: list[str] = Field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL
    summary: str = ""
    key_claims: list[str] = Field(default_factory=list)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _normalize_sentiment(cls, value):
        return normalize_sentiment(value)

    @classmethod
    def from_extraction(cls, document: Document, extracted: ExtractedInsight) -> "Insight":
        """Combine document identity with the extractor's analytic fields."""
        return cls(
            document_id=document.id,
            publisher=document.publisher,
            subject=document.subject,
            sent_at=document.sent_at.isoformat(),
            snippet=document.snippet(),
            themes=extracted.themes,
            entities=extracted.entities,
            sentiment=extracted.sentiment,
            summary=extracted.summary,
            key_claims=extracted.key_claims,
        )

    @classmethod
    def failed(cls, document: Document) -> "Insight":
        """Default insight used when extraction fails for any reason.

        Identity fields and the snippet come from the document, so the
        reduce phase still sees a complete 1:1 insight set.
        """
        return cls(
            document_id=document.id,
            publisher=document.publisher,
            subject=document.subject,
            sent_at=document.sent_at.isoformat(),
            snippet=document.snippet(),
            sentiment=Sentiment.NEUTRAL,
            summary=f"{EXTRACTION_FAILED_MARKER} {document.subject}",
        )

    @property
    def extraction_failed(self) -> bool:
        return self.summary.startswith(EXTRACTION_FAILED_MARKER)

    def __str__(self) -> str:
        return f"Insight({self.document_id}, {self.sentiment.value})"
