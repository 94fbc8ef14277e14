"""Briefing pipeline orchestration.

Pipeline Flow:
    1. LEASE: Take the single-flight lease (PipelineBusyError if held)
    2. WINDOW: Resolve (start, end] from overrides, the stored cursor or
       the fallback lookback
    3. FETCH: Read emails ingested in the window (most recent first, capped)
    4. MAP: One insight per email, batched; failures become default insights
    5. REDUCE: One synthesis call over every insight, with JSON repair
    6. VERIFY: Recompute each cluster's sentiment from its cited insights
    7. VALIDATE: Flag structural contract violations
    8. STORE: Append the StoredBriefing (this advances the cursor)

Failure Semantics:
    SynthesisError, StoreError and cancellation abort the run before STORE,
    so nothing is written and the next run retries the same window. An
    empty window still stores a briefing so the cursor advances.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from agents import InsightExtractor, NarrativeSynthesizer
from config import Config
from database import Database
from mapper import Extractor, map_documents
from models.briefing import StoredBriefing
from notifications import deliver
from observability.logging import clear_context, set_run_context
from observability.tracing import setup_tracing, trace_operation
from reducer import Synthesizer, reduce_insights
from verifier import validate_briefing, verify_briefing
from window import resolve_window

logger = logging.getLogger(__name__)

LEASE_NAME = "daily-briefing"


@dataclass
class BriefingOptions:
    """Per-run overrides. Unset fields take Config defaults.

    Attributes:
        window_start: Explicit exclusive start (requires window_end)
        window_end: Explicit inclusive end (requires window_start)
        window_hours: Lookback ending now (ignored if explicit bounds given)
        max_emails: Cap on emails fetched for the window
        map_batch_size: Concurrent extraction calls
    """

    window_start: datetime | None = None
    window_end: datetime | None = None
    window_hours: float | None = None
    max_emails: int | None = None
    map_batch_size: int | None = None

    def validate(self) -> None:
        """Raise ValueError for inconsistent or non-positive overrides."""
        if (self.window_start is None) != (self.window_end is None):
            raise ValueError("window_start and window_end must be given together")
        if self.window_hours is not None and self.window_hours <= 0:
            raise ValueError(f"window_hours must be positive, got {self.window_hours}")
        if self.max_emails is not None and self.max_emails <= 0:
            raise ValueError(f"max_emails must be positive, got {self.max_emails}")
        if self.map_batch_size is not None and self.map_batch_size <= 0:
            raise ValueError(f"map_batch_size must be positive, got {self.map_batch_size}")

    def with_defaults(self, config: Config) -> "BriefingOptions":
        """Validated copy with max_emails and map_batch_size filled from config."""
        self.validate()
        return replace(
            self,
            max_emails=self.max_emails or config.max_emails,
            map_batch_size=self.map_batch_size or config.map_batch_size,
        )


@dataclass
class PipelineStats:
    """Statistics from a single pipeline run."""

    run_id: str = ""
    briefing_id: str | None = None
    window_mode: str | None = None
    documents: int = 0              # Emails fetched for the window
    insights: int = 0               # Insights produced by the map phase
    extraction_failures: int = 0    # Insights that fell back to the default
    parse_mode: str | None = None   # empty / direct / repaired / placeholder
    overrides: int = 0              # Cluster sentiments corrected
    quality_flags: int = 0          # Structural violations recorded
    duration: float = 0.0           # Run time (seconds)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = asdict(self)
        d["duration"] = round(d["duration"], 2)
        return d


class BriefingPipeline:
    """Incremental map-reduce briefing generator.

    Components:
        - Database: document source, briefing store and run lease
        - InsightExtractor: per-email extraction (map)
        - NarrativeSynthesizer: single synthesis call (reduce)

    Extractor and synthesizer can be injected for testing; by default they
    are built from the config's model strings.
    """

    def __init__(
        self,
        config: Config,
        db: Database | None = None,
        extractor: Extractor | None = None,
        synthesizer: Synthesizer | None = None,
        lease_name: str = LEASE_NAME,
    ):
        self.config = config
        self.db = db or Database(config.db_path, timeout=config.store_timeout_seconds)
        self._owns_db = db is None
        self.extractor = extractor or InsightExtractor(config)
        self.synthesizer = synthesizer or NarrativeSynthesizer(config)
        self.lease_name = lease_name
        self.last_stats: PipelineStats | None = None

        if config.enable_logfire:
            setup_tracing(enabled=True, token=config.logfire_token)

    @property
    def model_version(self) -> str:
        extractor = getattr(self.extractor, "model_name", self.config.extractor_model)
        synthesizer = getattr(self.synthesizer, "model_name", self.config.synthesizer_model)
        return f"extractor:{extractor},synthesizer:{synthesizer}"

    async def generate(
        self,
        options: BriefingOptions | None = None,
        now: datetime | None = None,
    ) -> StoredBriefing:
        """Run the pipeline once and store the resulting briefing.

        Args:
            options: Per-run overrides (None = all defaults)
            now: Current time (defaults to datetime.now(UTC))

        Returns:
            The StoredBriefing that was inserted

        Raises:
            ValueError: Invalid options or window
            PipelineBusyError: Another run holds the lease
            SynthesisError: Synthesis failed; nothing stored
            StoreError: Insert failed
        """
        opts = (options or BriefingOptions()).with_defaults(self.config)
        now = now or datetime.now(timezone.utc)

        run_id = uuid.uuid4().hex[:8]
        set_run_context(run_id)
        start = time.time()
        stats = PipelineStats(run_id=run_id)
        self.last_stats = stats

        try:
            self.db.acquire_lease(self.lease_name, run_id, self.config.run_lease_seconds, now=now)
        except Exception:
            clear_context()
            raise

        logger.info("Pipeline started | max_emails=%d batch_size=%d", opts.max_emails, opts.map_batch_size)

        try:
            with trace_operation("resolve_window") as attrs:
                window = resolve_window(
                    self.db,
                    window_start=opts.window_start,
                    window_end=opts.window_end,
                    window_hours=opts.window_hours,
                    fallback_hours=self.config.fallback_window_hours,
                    now=now,
                )
                stats.window_mode = window.mode.value
                attrs["mode"] = window.mode.value

            with trace_operation("fetch_documents") as attrs:
                documents = self.db.fetch_documents(window.start, window.end, opts.max_emails)
                stats.documents = len(documents)
                attrs["documents"] = len(documents)

            with trace_operation("map", {"documents": len(documents)}) as attrs:
                mapped = await map_documents(
                    documents,
                    self.extractor,
                    batch_size=opts.map_batch_size,
                    timeout=self.config.extract_timeout_seconds,
                )
                stats.insights = len(mapped.insights)
                stats.extraction_failures = mapped.failed
                attrs["failed"] = mapped.failed

            with trace_operation("reduce", {"insights": len(mapped.insights)}) as attrs:
                reduced = await reduce_insights(
                    mapped.insights,
                    self.synthesizer,
                    timeout=self.config.synthesize_timeout_seconds,
                )
                stats.parse_mode = reduced.parse_mode
                attrs["parse_mode"] = reduced.parse_mode

            briefing = reduced.briefing
            if mapped.insights:
                with trace_operation("verify") as attrs:
                    briefing, stats.overrides = verify_briefing(briefing, mapped.insights)
                    briefing = validate_briefing(
                        briefing,
                        mapped.insights,
                        drop_undersourced=self.config.drop_undersourced_clusters,
                    )
                    stats.quality_flags = len(briefing.quality_flags)
                    attrs["overrides"] = stats.overrides
                    attrs["quality_flags"] = stats.quality_flags

            stored = StoredBriefing(
                briefing_id=str(uuid.uuid4()),
                generated_at=now,
                time_window_start=window.start,
                time_window_end=window.end,
                content=briefing,
                email_count=len(documents),
                model_version=self.model_version,
            )
            with trace_operation("store"):
                self.db.insert_briefing(stored)
            stats.briefing_id = stored.briefing_id
            stats.duration = time.time() - start

            logger.info(
                "Pipeline done | id=%s duration=%.1fs emails=%d failed=%d parse=%s overrides=%d flags=%d",
                stats.briefing_id, stats.duration, stats.documents, stats.extraction_failures,
                stats.parse_mode, stats.overrides, stats.quality_flags,
            )

        except asyncio.CancelledError:
            logger.info("Pipeline run cancelled | nothing stored")
            raise
        except Exception as e:
            logger.error("Pipeline failed | type=%s error=%s", type(e).__name__, e)
            raise
        finally:
            self.db.release_lease(self.lease_name, run_id)
            clear_context()

        return stored

    def close(self) -> None:
        """Close the database if this pipeline opened it."""
        if self._owns_db:
            self.db.close()


async def generate_briefing(
    config: Config,
    options: BriefingOptions | None = None,
    deliver_report: bool = True,
) -> tuple[StoredBriefing, PipelineStats]:
    """Run the pipeline once, then deliver the stored briefing.

    Delivery failures are logged by the delivery layer and never raised.
    """
    pipeline = BriefingPipeline(config)
    try:
        stored = await pipeline.generate(options)
        stats = pipeline.last_stats
    finally:
        pipeline.close()

    if deliver_report:
        ok, report_path = await deliver(stored, config)
        stats.extra["delivered"] = ok
        stats.extra["report_path"] = str(report_path) if report_path else None

    return stored, stats
