"""Map phase: one insight per email with bounded concurrency.

Emails are processed in sequential batches. Inside a batch every extraction
runs concurrently and the batch is awaited as a whole before the next one
starts, so at most batch_size extraction calls are ever in flight.

Failure Policy:
    Any per-email failure (provider error, timeout, empty or unparseable
    output) is replaced by Insight.failed(document). The map phase never
    raises for a single email and always returns exactly one insight per
    input email.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from models.document import Document
from models.insight import Insight

logger = logging.getLogger(__name__)


class Extractor(Protocol):
    async def extract(self, document: Document) -> Insight: ...


@dataclass
class MapResult:
    """Insights plus failure accounting for one map phase."""

    insights: list[Insight]
    failed: int = 0


async def _extract_one(
    extractor: Extractor,
    document: Document,
    timeout: float | None,
) -> tuple[Insight, bool]:
    """Extract one insight, substituting the default on any failure.

    Returns:
        Tuple of (insight, ok)
    """
    try:
        insight = await asyncio.wait_for(extractor.extract(document), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Extraction timed out | id=%s timeout=%ss", document.id, timeout)
        return Insight.failed(document), False
    except Exception as e:
        logger.warning("Extraction failed | id=%s type=%s error=%s", document.id, type(e).__name__, e)
        return Insight.failed(document), False

    if insight.document_id != document.id:
        # Ownership is fixed by the input email, never by the extractor
        logger.warning(
            "Extractor returned foreign document id | expected=%s got=%s",
            document.id, insight.document_id,
        )
        insight = insight.model_copy(update={"document_id": document.id})
    return insight, True


async def map_documents(
    documents: list[Document],
    extractor: Extractor,
    batch_size: int = 10,
    timeout: float | None = None,
) -> MapResult:
    """Extract insights from all documents in sequential concurrent batches.

    Args:
        documents: Emails to process (already capped by the caller)
        extractor: Insight extractor
        batch_size: Maximum concurrent extraction calls
        timeout: Per-call timeout in seconds (None = no timeout)

    Returns:
        MapResult with exactly len(documents) insights
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    if not documents:
        return MapResult(insights=[])

    total_batches = (len(documents) + batch_size - 1) // batch_size
    logger.info("Map phase started | emails=%d batch_size=%d batches=%d",
                len(documents), batch_size, total_batches)

    insights: list[Insight] = []
    failed = 0
    for start in range(0, len(documents), batch_size):
        batch_num = start // batch_size + 1
        batch = documents[start:start + batch_size]

        results = await asyncio.gather(
            *(_extract_one(extractor, doc, timeout) for doc in batch)
        )
        batch_failed = sum(1 for _, ok in results if not ok)
        failed += batch_failed
        insights.extend(insight for insight, _ in results)

        logger.info("Map batch complete | batch=%d/%d size=%d failed=%d",
                    batch_num, total_batches, len(batch), batch_failed)

    logger.info("Map phase complete | insights=%d failed=%d", len(insights), failed)
    return MapResult(insights=insights, failed=failed)


def format_insights_for_context(insights: list[Insight]) -> str:
    """Serialize insights into the synthesis context, one record each."""
    blocks = []
    for idx, insight in enumerate(insights, start=1):
        claims = "\n".join(f"  - {claim}" for claim in insight.key_claims)
        blocks.append(
            f"--- Insight {idx} ---\n"
            f"ID: {insight.document_id}\n"
            f"Publisher: {insight.publisher}\n"
            f"Subject: {insight.subject}\n"
            f"Date: {insight.sent_at}\n"
            f"Themes: {', '.join(insight.themes)}\n"
            f"Entities: {', '.join(insight.entities)}\n"
            f"Sentiment: {insight.sentiment.value}\n"
            f"Summary: {insight.summary}\n"
            f"Key Claims:\n{claims}"
        )
    return "\n\n".join(blocks)
