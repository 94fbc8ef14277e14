import asyncio

import pytest

from mapper import format_insights_for_context, map_documents
from models.insight import EXTRACTION_FAILED_MARKER, Insight, Sentiment
from tests.fakes import FakeExtractor, make_document, make_insight


def test_one_insight_per_document_in_input_order():
    documents = [make_document(f"d{i}") for i in range(7)]
    extractor = FakeExtractor(sentiments={"d3": "positive"})

    result = asyncio.run(map_documents(documents, extractor, batch_size=3))

    assert [i.document_id for i in result.insights] == [d.id for d in documents]
    assert result.failed == 0
    assert result.insights[3].sentiment == Sentiment.POSITIVE


def test_in_flight_calls_bounded_by_batch_size():
    documents = [make_document(f"d{i}") for i in range(25)]
    extractor = FakeExtractor(delay=0.01)

    asyncio.run(map_documents(documents, extractor, batch_size=10))

    assert extractor.max_in_flight == 10
    assert len(extractor.calls) == 25


def test_failed_extraction_becomes_default_insight():
    documents = [make_document("ok"), make_document("bad", subject="Weekly Macro")]
    extractor = FakeExtractor(fail_ids={"bad"})

    result = asyncio.run(map_documents(documents, extractor, batch_size=10))

    assert result.failed == 1
    failed = result.insights[1]
    assert failed.document_id == "bad"
    assert failed.sentiment == Sentiment.NEUTRAL
    assert failed.summary == f"{EXTRACTION_FAILED_MARKER} Weekly Macro"
    assert failed.extraction_failed
    assert failed.snippet
    assert failed.themes == []


def test_timed_out_extraction_becomes_default_insight():
    documents = [make_document("slow"), make_document("fast")]
    extractor = FakeExtractor(hang_ids={"slow"})

    result = asyncio.run(map_documents(documents, extractor, batch_size=2, timeout=0.05))

    assert result.failed == 1
    assert result.insights[0].extraction_failed
    assert not result.insights[1].extraction_failed


def test_foreign_document_id_is_corrected():
    class MislabelingExtractor:
        async def extract(self, document):
            return make_insight("someone-else")

    result = asyncio.run(map_documents([make_document("mine")], MislabelingExtractor()))

    assert result.insights[0].document_id == "mine"
    assert result.failed == 0


def test_empty_input_makes_no_calls():
    extractor = FakeExtractor()

    result = asyncio.run(map_documents([], extractor))

    assert result.insights == []
    assert extractor.calls == []


def test_non_positive_batch_size_rejected():
    with pytest.raises(ValueError):
        asyncio.run(map_documents([make_document("d1")], FakeExtractor(), batch_size=0))


def test_context_contains_one_record_per_insight():
    insights = [make_insight("d1", "positive"), Insight.failed(make_document("d2"))]

    context = format_insights_for_context(insights)

    assert "--- Insight 1 ---" in context
    assert "--- Insight 2 ---" in context
    assert "ID: d1" in context
    assert "Sentiment: positive" in context
    assert "  - Claim from d1" in context
    assert f"Summary: {EXTRACTION_FAILED_MARKER} Issue d2" in context


def test_every_extraction_failing_still_yields_one_insight_each():
    documents = [make_document(f"d{i}") for i in range(7)]
    extractor = FakeExtractor(fail_ids={d.id for d in documents})

    result = asyncio.run(map_documents(documents, extractor, batch_size=3))

    assert len(result.insights) == 7
    assert result.failed == 7
    assert [i.document_id for i in result.insights] == [d.id for d in documents]
    assert all(i.extraction_failed for i in result.insights)
    assert len(extractor.calls) == 7
