"""Exception types raised by the briefing pipeline.

Only SynthesisError, StoreError and PipelineBusyError ever reach the caller.
ExtractionError is always absorbed by the map stage, which substitutes a
default insight for the failed email.
"""

from datetime import datetime


class BriefingError(Exception):
    """Base class for all briefing pipeline errors."""


class ExtractionError(BriefingError):
    """Insight extraction returned no usable output for one email."""


class SynthesisError(BriefingError):
    """The synthesis call failed, timed out, or returned nothing.

    Fatal to the run: no briefing is stored, so the next run recomputes
    the same window.
    """


class StoreError(BriefingError):
    """A briefing could not be written to the store."""


class PipelineBusyError(BriefingError):
    """Another run currently holds the single-flight lease."""

    def __init__(self, name: str, owner: str, expires_at: datetime | None = None):
        expires = expires_at.isoformat() if expires_at else "unknown"
        super().__init__(f"Pipeline '{name}' is already running (owner={owner}, expires={expires})")
        self.name = name
        self.owner = owner
        self.expires_at = expires_at
