import asyncio
from datetime import timedelta

import pytest

from errors import PipelineBusyError, SynthesisError
from models.briefing import EMPTY_WINDOW_MESSAGE, Consensus
from models.insight import EXTRACTION_FAILED_MARKER
from pipeline import BriefingOptions, BriefingPipeline, LEASE_NAME
from tests.fakes import BASE_TIME, FakeExtractor, FakeSynthesizer, context_ids, make_document


def _pipeline(config, db, extractor=None, synthesizer=None):
    return BriefingPipeline(
        config,
        db=db,
        extractor=extractor or FakeExtractor(),
        synthesizer=synthesizer or FakeSynthesizer(),
    )


def test_generate_stores_verified_briefing(config, db):
    db.insert_documents([
        make_document(f"d{i}", ingested_at=BASE_TIME - timedelta(hours=i)) for i in range(1, 5)
    ])
    extractor = FakeExtractor(sentiments={"d1": "negative", "d2": "negative", "d3": "positive"})
    synthesizer = FakeSynthesizer(consensus="Positive")
    pipeline = _pipeline(config, db, extractor, synthesizer)

    stored = asyncio.run(pipeline.generate(now=BASE_TIME))

    assert db.get_briefing(stored.briefing_id) == stored
    assert stored.email_count == 4
    assert stored.time_window_end == BASE_TIME
    assert stored.time_window_start == BASE_TIME - timedelta(hours=24)
    assert stored.model_version == "extractor:fake-extractor,synthesizer:fake-synthesizer"

    clusters = stored.content.narrative_clusters
    assert clusters[0].source_ids == ["d1", "d2"]
    assert clusters[0].consensus_sentiment == Consensus.NEGATIVE
    assert clusters[0].sentiment_breakdown.override_applied
    assert clusters[1].consensus_sentiment == Consensus.MIXED

    stats = pipeline.last_stats
    assert stats.window_mode == "fallback"
    assert stats.documents == 4
    assert stats.overrides == 2
    assert stats.parse_mode == "direct"
    # Two clusters is below the 3-7 contract
    assert any("narrative clusters" in flag for flag in stored.content.quality_flags)


def test_consecutive_runs_process_each_email_once(config, db):
    first_end = BASE_TIME
    db.insert_documents([
        make_document("before", ingested_at=first_end - timedelta(hours=1)),
        make_document("boundary", ingested_at=first_end),
    ])
    synthesizer = FakeSynthesizer()
    pipeline = _pipeline(config, db, synthesizer=synthesizer)

    asyncio.run(pipeline.generate(now=first_end))
    db.insert_documents([make_document("later", ingested_at=first_end + timedelta(hours=2))])
    second = asyncio.run(pipeline.generate(now=first_end + timedelta(hours=6)))

    first_ids = context_ids(synthesizer.calls[0][0])
    second_ids = context_ids(synthesizer.calls[1][0])
    assert sorted(first_ids) == ["before", "boundary"]
    assert second_ids == ["later"]
    assert second.time_window_start == first_end
    assert pipeline.last_stats.window_mode == "delta"


def test_empty_window_is_stored_and_advances_cursor(config, db):
    synthesizer = FakeSynthesizer()
    pipeline = _pipeline(config, db, synthesizer=synthesizer)

    stored = asyncio.run(pipeline.generate(now=BASE_TIME))

    assert stored.email_count == 0
    assert stored.content.executive_summary == [EMPTY_WINDOW_MESSAGE]
    assert stored.content.quality_flags == []
    assert synthesizer.calls == []
    assert db.last_window_end() == BASE_TIME


def test_extraction_failures_do_not_fail_the_run(config, db):
    db.insert_documents([
        make_document("good", ingested_at=BASE_TIME - timedelta(hours=1)),
        make_document("broken", ingested_at=BASE_TIME - timedelta(hours=2), subject="Broken issue"),
    ])
    synthesizer = FakeSynthesizer()
    pipeline = _pipeline(config, db, FakeExtractor(fail_ids={"broken"}), synthesizer)

    stored = asyncio.run(pipeline.generate(now=BASE_TIME))

    context, count = synthesizer.calls[0]
    assert count == 2
    assert f"{EXTRACTION_FAILED_MARKER} Broken issue" in context
    assert stored.email_count == 2
    assert pipeline.last_stats.extraction_failures == 1


def test_synthesis_failure_stores_nothing_and_releases_lease(config, db):
    db.insert_documents([make_document("d1", ingested_at=BASE_TIME - timedelta(hours=1))])
    failing = _pipeline(config, db, synthesizer=FakeSynthesizer(error=SynthesisError("quota")))

    with pytest.raises(SynthesisError):
        asyncio.run(failing.generate(now=BASE_TIME))

    assert db.latest_briefing() is None
    assert db.last_window_end() is None

    retry = _pipeline(config, db)
    stored = asyncio.run(retry.generate(now=BASE_TIME + timedelta(minutes=5)))
    assert stored.email_count == 1


def test_busy_lease_rejects_concurrent_run(config, db):
    db.acquire_lease(LEASE_NAME, "other-run", ttl_seconds=600, now=BASE_TIME)
    synthesizer = FakeSynthesizer()
    pipeline = _pipeline(config, db, synthesizer=synthesizer)

    with pytest.raises(PipelineBusyError):
        asyncio.run(pipeline.generate(now=BASE_TIME))

    assert db.latest_briefing() is None
    assert synthesizer.calls == []


def test_options_override_window_and_cap(config, db):
    db.insert_documents([
        make_document(f"d{i}", ingested_at=BASE_TIME - timedelta(hours=i)) for i in range(1, 6)
    ])
    extractor = FakeExtractor()
    pipeline = _pipeline(config, db, extractor=extractor)
    options = BriefingOptions(window_hours=4, max_emails=2, map_batch_size=1)

    stored = asyncio.run(pipeline.generate(options, now=BASE_TIME))

    assert stored.time_window_start == BASE_TIME - timedelta(hours=4)
    assert stored.email_count == 2
    assert extractor.calls == ["d1", "d2"]
    assert extractor.max_in_flight == 1
    assert pipeline.last_stats.window_mode == "hours"


def test_explicit_window_allows_rerun_of_processed_interval(config, db):
    db.insert_documents([make_document("d1", ingested_at=BASE_TIME - timedelta(hours=1))])
    pipeline = _pipeline(config, db)
    asyncio.run(pipeline.generate(now=BASE_TIME))

    options = BriefingOptions(window_start=BASE_TIME - timedelta(hours=2), window_end=BASE_TIME)
    rerun = asyncio.run(pipeline.generate(options, now=BASE_TIME + timedelta(hours=1)))

    assert rerun.email_count == 1
    assert pipeline.last_stats.window_mode == "explicit"


@pytest.mark.parametrize("options", [
    BriefingOptions(window_start=BASE_TIME),
    BriefingOptions(window_hours=-1),
    BriefingOptions(max_emails=0),
    BriefingOptions(map_batch_size=0),
])
def test_invalid_options_rejected_before_any_work(config, db, options):
    synthesizer = FakeSynthesizer()
    pipeline = _pipeline(config, db, synthesizer=synthesizer)

    with pytest.raises(ValueError):
        asyncio.run(pipeline.generate(options, now=BASE_TIME))

    assert db.latest_briefing() is None
