"""Delivery of stored briefings.

Outputs:
    Markdown: Full briefing report saved under REPORTS_DIR
    Webhook: JSON summary POSTed to NOTIFICATION_WEBHOOK_URL (optional)

The briefing is already stored when delivery runs, so every delivery
failure is logged and reported in the return value, never raised.
"""

import asyncio
import logging
import ssl
from pathlib import Path

import aiohttp
import certifi

from config import Config
from models.briefing import StoredBriefing
from render import render_briefing_markdown

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 10


def _ssl_context() -> ssl.SSLContext:
    return ssl.create_default_context(cafile=certifi.where())


def report_filename(stored: StoredBriefing) -> str:
    timestamp = stored.generated_at.strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_briefing_{stored.briefing_id[:8]}.md"


async def save_briefing_report(stored: StoredBriefing, reports_dir: Path) -> Path | None:
    """Write the rendered briefing to reports_dir.

    Returns:
        Path of the written file, or None on failure
    """
    try:
        reports_dir.mkdir(parents=True, exist_ok=True)
        filepath = reports_dir / report_filename(stored)
        filepath.write_text(render_briefing_markdown(stored), encoding="utf-8")
        logger.info("Report saved | file=%s", filepath.name)
        return filepath
    except OSError as e:
        logger.error("Report save failed | dir=%s error=%s", reports_dir, e)
        return None


def webhook_payload(stored: StoredBriefing) -> dict:
    briefing = stored.content
    return {
        "type": "briefing",
        "briefing_id": stored.briefing_id,
        "generated_at": stored.generated_at.isoformat(),
        "time_window_start": stored.time_window_start.isoformat(),
        "time_window_end": stored.time_window_end.isoformat(),
        "email_count": stored.email_count,
        "executive_summary": briefing.executive_summary,
        "narratives": [
            {
                "title": cluster.title,
                "consensus_sentiment": cluster.consensus_sentiment.value if cluster.consensus_sentiment else None,
                "source_count": len(cluster.sources) or len(cluster.source_ids),
            }
            for cluster in briefing.narrative_clusters
        ],
        "radar_signals": briefing.radar_signals,
        "quality_flags": briefing.quality_flags,
    }


async def send_webhook(stored: StoredBriefing, url: str) -> bool:
    """POST a JSON summary of the briefing. No-op (success) when url is empty."""
    if not url:
        return True

    try:
        connector = aiohttp.TCPConnector(ssl=_ssl_context())
        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(
                url,
                json=webhook_payload(stored),
                timeout=aiohttp.ClientTimeout(total=WEBHOOK_TIMEOUT_SECONDS),
            ) as resp:
                if resp.status < 300:
                    logger.info("Webhook sent | id=%s status=%d", stored.briefing_id, resp.status)
                    return True
                logger.warning("Webhook failed | id=%s status=%d", stored.briefing_id, resp.status)
                return False
    except asyncio.TimeoutError:
        logger.warning("Webhook timeout | url=%s id=%s", url[:50], stored.briefing_id)
        return False
    except aiohttp.ClientError as e:
        logger.error("Webhook error | type=%s error=%s", type(e).__name__, e)
        return False


async def deliver(stored: StoredBriefing, config: Config) -> tuple[bool, Path | None]:
    """Save the report and send the webhook.

    Returns:
        (all_ok, report_path)
    """
    report_path = await save_briefing_report(stored, config.reports_dir)
    webhook_ok = await send_webhook(stored, config.webhook_url)
    return report_path is not None and webhook_ok, report_path
