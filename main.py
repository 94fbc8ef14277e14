#!/usr/bin/env python3
"""Newsletter briefing: incremental map-reduce intelligence briefings.

Reads newsletter emails from the ingestion store, extracts one insight per
email, synthesizes them into a briefing with verified sentiment, and
appends the result to the briefing store.

Commands:
    generate    Run the pipeline once for the next window
    latest      Print the most recent briefing as JSON
    show        Print a briefing by id as JSON
    archive     List recent briefings (first summary bullet only)
    render      Render a briefing as Markdown
    status      Show configuration and store statistics

Examples:
    python main.py generate                       # Delta window since last run
    python main.py generate --window-hours 48     # Force a 48h lookback
    python main.py generate --start 2026-10-01T00:00:00Z --end 2026-10-02T00:00:00Z
    python main.py archive --limit 10
    python main.py render --output today.md

Environment:
    GEMINI_API_KEY: Required for remote models
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from config import Config
from database import Database
from errors import BriefingError, PipelineBusyError
from observability.logging import setup_logging

logger = logging.getLogger(__name__)


def _parse_timestamp(value: str) -> datetime:
    """argparse type for ISO-8601 timestamps (naive = UTC)."""
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid ISO timestamp: {value}") from e
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def cmd_generate(args: argparse.Namespace, config: Config) -> int:
    """Run the pipeline once.

    Returns:
        Exit code (0 success, 1 failure, 2 busy, 130 interrupted)
    """
    from pipeline import BriefingOptions, generate_briefing

    options = BriefingOptions(
        window_start=args.start,
        window_end=args.end,
        window_hours=args.window_hours,
        max_emails=args.max_emails,
        map_batch_size=args.batch_size,
    )

    try:
        stored, stats = asyncio.run(
            generate_briefing(config, options, deliver_report=not args.no_deliver)
        )
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return 130
    except PipelineBusyError as e:
        print(f"Busy: {e}", file=sys.stderr)
        return 2
    except (BriefingError, ValueError) as e:
        logger.error("Generation failed | type=%s error=%s", type(e).__name__, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps({"briefing_id": stored.briefing_id, "stats": stats.to_dict()}, indent=2))
    return 0


def cmd_latest(args: argparse.Namespace, config: Config) -> int:
    with Database(config.db_path, timeout=config.store_timeout_seconds) as db:
        stored = db.latest_briefing()
    if stored is None:
        print("No briefings stored yet.")
        return 0
    print(stored.model_dump_json(indent=2))
    return 0


def cmd_show(args: argparse.Namespace, config: Config) -> int:
    with Database(config.db_path, timeout=config.store_timeout_seconds) as db:
        stored = db.get_briefing(args.briefing_id)
    if stored is None:
        print(f"Briefing not found: {args.briefing_id}", file=sys.stderr)
        return 1
    print(stored.model_dump_json(indent=2))
    return 0


def cmd_archive(args: argparse.Namespace, config: Config) -> int:
    with Database(config.db_path, timeout=config.store_timeout_seconds) as db:
        items = db.archive(limit=args.limit)

    if not items:
        print("No briefings stored yet.")
        return 0

    for item in items:
        summary = item.executive_summary or ""
        if len(summary) > 120:
            summary = summary[:120] + "..."
        print(f"{item.briefing_id}  {item.generated_at:%Y-%m-%d %H:%M}  emails={item.email_count:<4} {summary}")
    return 0


def cmd_render(args: argparse.Namespace, config: Config) -> int:
    """Render a briefing (latest by default) as Markdown."""
    from render import render_briefing_markdown

    with Database(config.db_path, timeout=config.store_timeout_seconds) as db:
        stored = db.get_briefing(args.briefing_id) if args.briefing_id else db.latest_briefing()

    if stored is None:
        print("Briefing not found.", file=sys.stderr)
        return 1

    markdown = render_briefing_markdown(stored)
    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(markdown, encoding="utf-8")
        print(f"Rendered: {output_path}")
    else:
        print(markdown)
    return 0


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    """Display configuration and store statistics."""
    with Database(config.db_path, timeout=config.store_timeout_seconds) as db:
        db_stats = db.stats()

    status = {
        "config": {
            "extractor_model": config.extractor_model,
            "synthesizer_model": config.synthesizer_model,
            "fallback_window_hours": config.fallback_window_hours,
            "max_emails": config.max_emails,
            "map_batch_size": config.map_batch_size,
            "drop_undersourced_clusters": config.drop_undersourced_clusters,
            "webhook_enabled": bool(config.webhook_url),
            "enable_logfire": config.enable_logfire,
        },
        "database": {"path": str(config.db_path), **db_stats},
    }
    print(json.dumps(status, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Newsletter intelligence briefing pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    generate_parser = subparsers.add_parser("generate", help="Generate a briefing for the next window")
    window_group = generate_parser.add_mutually_exclusive_group()
    window_group.add_argument(
        "--window-hours",
        type=float,
        help="Look back N hours from now instead of resuming from the last briefing",
    )
    window_group.add_argument(
        "--start",
        type=_parse_timestamp,
        help="Explicit exclusive window start (ISO-8601, requires --end)",
    )
    generate_parser.add_argument(
        "--end",
        type=_parse_timestamp,
        help="Explicit inclusive window end (ISO-8601, requires --start)",
    )
    generate_parser.add_argument("--max-emails", type=int, help="Cap on emails processed")
    generate_parser.add_argument("--batch-size", type=int, help="Concurrent extraction calls")
    generate_parser.add_argument(
        "--no-deliver",
        action="store_true",
        help="Skip report file and webhook delivery",
    )

    subparsers.add_parser("latest", help="Print the latest briefing")

    show_parser = subparsers.add_parser("show", help="Print a briefing by id")
    show_parser.add_argument("briefing_id", help="Briefing id")

    archive_parser = subparsers.add_parser("archive", help="List recent briefings")
    archive_parser.add_argument("--limit", type=int, default=30, help="Number of briefings (default: 30)")

    render_parser = subparsers.add_parser("render", help="Render a briefing as Markdown")
    render_parser.add_argument("briefing_id", nargs="?", help="Briefing id (default: latest)")
    render_parser.add_argument("--output", help="Write Markdown to this path instead of stdout")

    subparsers.add_parser("status", help="Show configuration and statistics")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config.load()
    setup_logging(config, verbose=args.verbose)

    if args.command == "generate":
        if (args.start is None) != (args.end is None):
            print("Error: --start and --end must be given together", file=sys.stderr)
            return 1
        error = config.validate()
        if error:
            print(f"Configuration error: {error}", file=sys.stderr)
            return 1

    commands = {
        "generate": cmd_generate,
        "latest": cmd_latest,
        "show": cmd_show,
        "archive": cmd_archive,
        "render": cmd_render,
        "status": cmd_status,
    }

    if args.command not in commands:
        parser.print_help()
        return 0

    try:
        return commands[args.command](args, config)
    except Exception as e:
        logger.error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
