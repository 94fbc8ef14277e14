"""Optional Logfire tracing for pipeline stages.

When enabled, setup_tracing() configures Logfire and instruments every
PydanticAI agent call, and trace_operation() opens a span around each
pipeline stage (window, map, reduce, verify, store). When disabled, or
when logfire is not installed, trace_operation() still yields an attribute
dict so call sites need no branching, and only logs the stage duration.

Requirements:
    pip install 'newsletter-briefing[tracing]'

Enable via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional for cloud dashboard
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator

logger = logging.getLogger(__name__)

SERVICE_NAME = "briefing"


@dataclass
class TracingContext:
    """Process-wide tracing state."""

    enabled: bool = False
    service_name: str = SERVICE_NAME
    token: str = ""
    _logfire_configured: bool = field(default=False, init=False)


_context = TracingContext()


def setup_tracing(
    enabled: bool = False,
    service_name: str = SERVICE_NAME,
    token: str = "",
) -> TracingContext:
    """Configure Logfire if enabled and installed.

    Returns:
        The process-wide TracingContext
    """
    _context.enabled = enabled
    _context.service_name = service_name
    _context.token = token

    if not enabled:
        logger.debug("Tracing disabled")
        return _context

    try:
        import logfire

        logfire.configure(service_name=service_name, token=token or None)
        logfire.instrument_pydantic_ai()
        _context._logfire_configured = True
        logger.info("Logfire tracing enabled | service=%s", service_name)
    except ImportError:
        logger.warning("Logfire not installed; tracing disabled")
        _context.enabled = False
    except Exception as e:
        logger.error("Failed to configure Logfire | error=%s", e)
        _context.enabled = False

    return _context


@contextmanager
def trace_operation(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[dict[str, Any], None, None]:
    """Span around one pipeline stage.

    Yields:
        Dict whose entries are attached to the span when the block exits
    """
    started = time.monotonic()
    result_attrs: dict[str, Any] = {}
    try:
        if _context.enabled and _context._logfire_configured:
            import logfire

            with logfire.span(name, **(attributes or {})) as span:
                yield result_attrs
                for key, value in result_attrs.items():
                    span.set_attribute(key, value)
        else:
            yield result_attrs
    finally:
        logger.debug("Stage finished | stage=%s duration=%.2fs", name, time.monotonic() - started)
