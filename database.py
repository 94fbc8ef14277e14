"""SQLite storage for the briefing pipeline.

This module provides the Briefing Store, the document source the pipeline
reads newsletter emails from, and the single-flight run lease.

Database Schema:
    documents table:
        - id (TEXT, PK): Unique message identifier
        - publisher (TEXT): Sender address
        - publisher_name (TEXT): Sender display name
        - subject (TEXT): Subject line
        - sent_at (INTEGER): Sent timestamp (microseconds since epoch, UTC)
        - ingested_at (INTEGER): Ingestion timestamp (microseconds, UTC)
        - body_html (TEXT), body_text (TEXT): Email bodies

    briefings table:
        - id (TEXT, PK): Briefing identifier
        - generated_at (INTEGER): Creation timestamp (microseconds, UTC)
        - time_window_start (INTEGER): Exclusive window start
        - time_window_end (INTEGER): Inclusive window end (delta cursor)
        - content_json (TEXT): Briefing serialized as JSON
        - email_count (INTEGER): Emails processed in the window
        - model_version (TEXT): Models that produced the briefing

    pipeline_leases table:
        - name (TEXT, PK): Lease name (one per pipeline)
        - owner (TEXT): Run id holding the lease
        - acquired_at (INTEGER), expires_at (INTEGER): Lease lifetime

Features:
    - Append-only briefings: inserts never overwrite an existing row
    - Integer microsecond timestamps so window comparisons are exact
    - WAL mode for concurrent read/write access
    - Context manager support for auto-cleanup
"""

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from errors import PipelineBusyError, StoreError
from models.briefing import Briefing, BriefingArchiveItem, StoredBriefing
from models.document import Document

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_micros(ts: datetime) -> int:
    """Convert a datetime to integer microseconds since epoch (naive = UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (ts - _EPOCH) // timedelta(microseconds=1)


def from_micros(value: int) -> datetime:
    """Convert integer microseconds since epoch to an aware UTC datetime."""
    return _EPOCH + timedelta(microseconds=value)


class Database:
    """SQLite store for documents, briefings and run leases.

    Example:
        >>> with Database("briefings.db") as db:
        ...     docs = db.fetch_documents(start, end, limit=500)
        ...     db.insert_briefing(stored)
        ...     latest = db.latest_briefing()
    """

    SCHEMA = """
    -- Newsletter emails written by the ingestion layer
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        publisher TEXT NOT NULL,
        publisher_name TEXT,
        subject TEXT NOT NULL DEFAULT '',
        sent_at INTEGER NOT NULL,
        ingested_at INTEGER NOT NULL,
        body_html TEXT,
        body_text TEXT
    );

    -- Window queries filter on ingestion time
    CREATE INDEX IF NOT EXISTS idx_documents_ingested ON documents(ingested_at);

    -- One row per pipeline run, never updated
    CREATE TABLE IF NOT EXISTS briefings (
        id TEXT PRIMARY KEY,
        generated_at INTEGER NOT NULL,
        time_window_start INTEGER NOT NULL,
        time_window_end INTEGER NOT NULL,
        content_json TEXT NOT NULL,
        email_count INTEGER NOT NULL,
        model_version TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_briefings_generated ON briefings(generated_at);
    CREATE INDEX IF NOT EXISTS idx_briefings_window_end ON briefings(time_window_end);

    -- Single-flight lease per pipeline name
    CREATE TABLE IF NOT EXISTS pipeline_leases (
        name TEXT PRIMARY KEY,
        owner TEXT NOT NULL,
        acquired_at INTEGER NOT NULL,
        expires_at INTEGER NOT NULL
    );
    """

    path: Path
    conn: sqlite3.Connection

    def __init__(self, path: Path | str, timeout: float = 30.0):
        """Initialize database connection.

        Args:
            path: Path to SQLite database file (":memory:" for tests)
            timeout: Seconds to wait on a locked database
        """
        self.path = Path(path)
        self.conn = sqlite3.connect(str(path), timeout=timeout)
        self.conn.row_factory = sqlite3.Row

        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()
        logger.debug("Database initialized | path=%s", self.path)

    def _init_schema(self) -> None:
        self.conn.executescript(self.SCHEMA)
        self.conn.commit()

    # --- Document source ---

    def insert_documents(self, documents: list[Document]) -> int:
        """Insert documents, skipping ids that already exist.

        Returns:
            Number of newly inserted documents
        """
        inserted = 0
        try:
            with self.conn:
                for doc in documents:
                    cursor = self.conn.execute(
                        """
                        INSERT OR IGNORE INTO documents
                        (id, publisher, publisher_name, subject, sent_at, ingested_at, body_html, body_text)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            doc.id,
                            doc.publisher,
                            doc.publisher_name,
                            doc.subject,
                            to_micros(doc.sent_at),
                            to_micros(doc.ingested_at),
                            doc.body_html,
                            doc.body_text,
                        ),
                    )
                    inserted += cursor.rowcount
        except sqlite3.Error as e:
            raise StoreError(f"Failed to insert documents: {e}") from e

        logger.debug("Documents inserted | new=%d total=%d", inserted, len(documents))
        return inserted

    def fetch_documents(self, start: datetime, end: datetime, limit: int) -> list[Document]:
        """Documents ingested in (start, end], most recent first, capped at limit."""
        cursor = self.conn.execute(
            """
            SELECT * FROM documents
            WHERE ingested_at > ? AND ingested_at <= ?
            ORDER BY ingested_at DESC
            LIMIT ?
            """,
            (to_micros(start), to_micros(end), limit),
        )
        documents = [
            Document(
                id=row["id"],
                publisher=row["publisher"],
                publisher_name=row["publisher_name"],
                subject=row["subject"],
                sent_at=from_micros(row["sent_at"]),
                ingested_at=from_micros(row["ingested_at"]),
                body_html=row["body_html"],
                body_text=row["body_text"],
            )
            for row in cursor.fetchall()
        ]
        logger.info("Documents fetched | count=%d limit=%d", len(documents), limit)
        return documents

    # --- Briefing store ---

    def insert_briefing(self, stored: StoredBriefing) -> None:
        """Append a briefing. Never overwrites an existing id.

        Raises:
            StoreError: Duplicate id or any SQLite failure
        """
        try:
            with self.conn:
                self.conn.execute(
                    """
                    INSERT INTO briefings
                    (id, generated_at, time_window_start, time_window_end,
                     content_json, email_count, model_version)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        stored.briefing_id,
                        to_micros(stored.generated_at),
                        to_micros(stored.time_window_start),
                        to_micros(stored.time_window_end),
                        stored.content.model_dump_json(),
                        stored.email_count,
                        stored.model_version,
                    ),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to insert briefing {stored.briefing_id}: {e}") from e

        logger.info(
            "Briefing stored | id=%s emails=%d window_end=%s",
            stored.briefing_id, stored.email_count, stored.time_window_end.isoformat(),
        )

    def _row_to_briefing(self, row: sqlite3.Row) -> StoredBriefing:
        return StoredBriefing(
            briefing_id=row["id"],
            generated_at=from_micros(row["generated_at"]),
            time_window_start=from_micros(row["time_window_start"]),
            time_window_end=from_micros(row["time_window_end"]),
            content=Briefing.model_validate_json(row["content_json"]),
            email_count=row["email_count"],
            model_version=row["model_version"],
        )

    def latest_briefing(self) -> StoredBriefing | None:
        """Briefing with the greatest generated_at, or None."""
        cursor = self.conn.execute(
            "SELECT * FROM briefings ORDER BY generated_at DESC, rowid DESC LIMIT 1"
        )
        row = cursor.fetchone()
        return self._row_to_briefing(row) if row else None

    def get_briefing(self, briefing_id: str) -> StoredBriefing | None:
        """Briefing by id, or None if not found."""
        cursor = self.conn.execute("SELECT * FROM briefings WHERE id = ?", (briefing_id,))
        row = cursor.fetchone()
        return self._row_to_briefing(row) if row else None

    def archive(self, limit: int = 30) -> list[BriefingArchiveItem]:
        """Most recent briefings with only the first executive-summary bullet."""
        cursor = self.conn.execute(
            """
            SELECT id, generated_at, email_count,
                   json_extract(content_json, '$.executive_summary[0]') AS first_bullet
            FROM briefings
            ORDER BY generated_at DESC, rowid DESC
            LIMIT ?
            """,
            (limit,),
        )
        return [
            BriefingArchiveItem(
                briefing_id=row["id"],
                generated_at=from_micros(row["generated_at"]),
                email_count=row["email_count"],
                executive_summary=row["first_bullet"],
            )
            for row in cursor.fetchall()
        ]

    def last_window_end(self) -> datetime | None:
        """Maximum stored time_window_end (the delta cursor), or None."""
        cursor = self.conn.execute("SELECT MAX(time_window_end) AS last_end FROM briefings")
        row = cursor.fetchone()
        if row is None or row["last_end"] is None:
            return None
        return from_micros(row["last_end"])

    # --- Run lease ---

    def acquire_lease(
        self,
        name: str,
        owner: str,
        ttl_seconds: float,
        now: datetime | None = None,
    ) -> None:
        """Take the named lease, replacing it only if it has expired.

        Raises:
            PipelineBusyError: Another owner holds an unexpired lease
            StoreError: SQLite failure
        """
        now = now or datetime.now(timezone.utc)
        now_us = to_micros(now)
        expires_us = to_micros(now + timedelta(seconds=ttl_seconds))

        try:
            with self.conn:
                self.conn.execute(
                    "DELETE FROM pipeline_leases WHERE name = ? AND expires_at <= ?",
                    (name, now_us),
                )
                cursor = self.conn.execute(
                    """
                    INSERT OR IGNORE INTO pipeline_leases (name, owner, acquired_at, expires_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (name, owner, now_us, expires_us),
                )
                acquired = cursor.rowcount == 1
                holder = None
                if not acquired:
                    holder = self.conn.execute(
                        "SELECT owner, expires_at FROM pipeline_leases WHERE name = ?",
                        (name,),
                    ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to acquire lease {name}: {e}") from e

        if not acquired:
            holder_owner = holder["owner"] if holder else "unknown"
            expires_at = from_micros(holder["expires_at"]) if holder else None
            logger.warning("Lease busy | name=%s holder=%s", name, holder_owner)
            raise PipelineBusyError(name, holder_owner, expires_at)

        logger.info("Lease acquired | name=%s owner=%s ttl=%ss", name, owner, ttl_seconds)

    def release_lease(self, name: str, owner: str) -> bool:
        """Release the lease if still held by owner.

        Returns:
            True if a lease row was deleted
        """
        with self.conn:
            cursor = self.conn.execute(
                "DELETE FROM pipeline_leases WHERE name = ? AND owner = ?",
                (name, owner),
            )
        released = cursor.rowcount == 1
        if released:
            logger.info("Lease released | name=%s owner=%s", name, owner)
        else:
            logger.warning("Lease not held at release | name=%s owner=%s", name, owner)
        return released

    def stats(self) -> dict[str, Any]:
        """Get database statistics.

        Returns:
            Dictionary with document and briefing counts plus the cursor
        """
        documents = self.conn.execute("SELECT COUNT(*) AS total FROM documents").fetchone()
        briefings = self.conn.execute("SELECT COUNT(*) AS total FROM briefings").fetchone()
        last_end = self.last_window_end()
        return {
            "documents": documents["total"] or 0,
            "briefings": briefings["total"] or 0,
            "last_window_end": last_end.isoformat() if last_end else None,
        }

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> "Database":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
