"""Offline stand-ins for the extractor and synthesizer."""

import asyncio
import json
import re
from datetime import datetime, timedelta, timezone

from errors import ExtractionError
from models.document import Document
from models.insight import ExtractedInsight, Insight

BASE_TIME = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

_CONTEXT_ID = re.compile(r"^ID: (.+)$", re.MULTILINE)


def make_document(
    doc_id: str,
    ingested_at: datetime | None = None,
    subject: str | None = None,
    publisher: str = "desk@example.com",
    body_text: str | None = None,
    body_html: str | None = None,
) -> Document:
    ingested_at = ingested_at or BASE_TIME
    return Document(
        id=doc_id,
        publisher=publisher,
        subject=subject if subject is not None else f"Issue {doc_id}",
        sent_at=ingested_at - timedelta(minutes=5),
        ingested_at=ingested_at,
        body_text=body_text if body_text is not None or body_html else f"Body of {doc_id} about rates.",
        body_html=body_html,
    )


def make_insight(doc_id: str, sentiment: str = "neutral") -> Insight:
    return Insight.from_extraction(
        make_document(doc_id),
        ExtractedInsight(
            themes=["rates"],
            entities=["Fed"],
            sentiment=sentiment,
            summary=f"Summary of {doc_id}",
            key_claims=[f"Claim from {doc_id}"],
        ),
    )


def context_ids(context: str) -> list[str]:
    """Document ids in a serialized insight context, in order."""
    return _CONTEXT_ID.findall(context)


def briefing_json(source_ids: list[str], consensus: str = "Positive") -> str:
    """A contract-conforming briefing citing the given ids."""
    ids = list(source_ids)
    pairs = [ids[i:i + 2] for i in range(0, len(ids), 2)] or [[]]
    clusters = [
        {
            "title": f"Narrative {n}",
            "synthesis": "Sources agree on the direction of rates.",
            "consensus_sentiment": consensus,
            "counter_point": None,
            "source_ids": pair,
        }
        for n, pair in enumerate(pairs[:7], start=1)
    ]
    serendipity = [
        {"title": f"Aside {n}", "insight": "Unrelated but notable.", "source_id": sid, "publisher": "desk@example.com"}
        for n, sid in enumerate(ids[:2], start=1)
    ]
    return json.dumps({
        "executive_summary": ["Point one", "Point two", "Point three"],
        "narrative_clusters": clusters,
        "serendipity_corner": serendipity,
        "radar_signals": ["Fed", "ECB", "yield curve"],
    })


class FakeExtractor:
    """Deterministic extractor with failure and concurrency tracking."""

    model_name = "fake-extractor"

    def __init__(
        self,
        sentiments: dict[str, str] | None = None,
        fail_ids: set[str] | frozenset = frozenset(),
        hang_ids: set[str] | frozenset = frozenset(),
        delay: float = 0.0,
    ):
        self.sentiments = sentiments or {}
        self.fail_ids = fail_ids
        self.hang_ids = hang_ids
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def extract(self, document: Document) -> Insight:
        self.calls.append(document.id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if document.id in self.hang_ids:
                await asyncio.sleep(3600)
            if document.id in self.fail_ids:
                raise ExtractionError(f"bad output for {document.id}")
            return Insight.from_extraction(
                document,
                ExtractedInsight(
                    themes=["rates"],
                    entities=["Fed"],
                    sentiment=self.sentiments.get(document.id, "neutral"),
                    summary=f"Summary of {document.subject}",
                    key_claims=["Rates will move"],
                ),
            )
        finally:
            self.in_flight -= 1


class FakeSynthesizer:
    """Synthesizer returning a fixed text, a text built from the context, or an error."""

    model_name = "fake-synthesizer"

    def __init__(self, response: str | None = None, error: Exception | None = None,
                 consensus: str = "Positive", delay: float = 0.0):
        self.response = response
        self.error = error
        self.consensus = consensus
        self.delay = delay
        self.calls: list[tuple[str, int]] = []

    async def synthesize(self, context: str, insight_count: int) -> str:
        self.calls.append((context, insight_count))
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.response is not None:
            return self.response
        return briefing_json(context_ids(context), consensus=self.consensus)
