"""Logging context and optional tracing for the briefing pipeline.

setup_logging / set_run_context / clear_context:
    Console plus rotating-file logging with a per-run id on every record.

setup_tracing / trace_operation:
    Logfire spans around pipeline stages; a no-op when disabled.
"""

from observability.logging import clear_context, set_run_context, setup_logging
from observability.tracing import TracingContext, setup_tracing, trace_operation

__all__ = [
    "setup_logging",
    "set_run_context",
    "clear_context",
    "setup_tracing",
    "trace_operation",
    "TracingContext",
]
