"""Logging and tracing for archive production.

Every step that touches the filesystem or a subprocess (locating roots,
building a project, synthesizing or signing an archive) runs inside
``artifact_operation``, which opens an OpenTelemetry span and logs its start,
end and failure through structlog. Without an installed OpenTelemetry SDK
the spans are no-ops and only the log events remain.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

if TYPE_CHECKING:
    from opentelemetry.trace import Span, Tracer
    from structlog.stdlib import BoundLogger

TRACER_NAME = "plugin_testkit"

_logger: BoundLogger | None = None
_tracer: Tracer | None = None


def get_logger() -> BoundLogger:
    """Return the shared ``plugin_testkit`` logger."""
    global _logger
    if _logger is None:
        _logger = structlog.get_logger(TRACER_NAME)
    assert _logger is not None  # Type narrowing for mypy
    return _logger


def get_tracer() -> Tracer:
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(TRACER_NAME)
    return _tracer


def configure_logging(
    *,
    log_level: str = "INFO",
    json_format: bool = True,
    add_timestamp: bool = True,
) -> None:
    """Route plugin-testkit events through the standard library logging tree.

    Test suites usually leave this alone and let their own structlog setup
    capture events; the CLI calls it for ``--log-level``.

    Args:
        log_level: Level name for the root logger, e.g. "DEBUG".
        json_format: Render JSON lines instead of the console renderer.
        add_timestamp: Prefix each event with an ISO timestamp.
    """
    import logging

    processors: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))
    processors.append(
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper()))


@contextmanager
def span(
    name: str,
    *,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
    log_start: bool = True,
    log_end: bool = True,
) -> Iterator[Span]:
    """Open a span named ``name`` and log ``<name>_started/_completed/_failed``.

    An exception marks the span as failed, is recorded on it, logged at error
    level with the span attributes, and re-raised unchanged.
    """
    attrs = attributes or {}
    logger = get_logger()

    with get_tracer().start_as_current_span(name, kind=kind, attributes=attrs) as s:
        if log_start:
            logger.debug(f"{name}_started", **attrs)
        try:
            yield s
        except Exception as exc:
            s.set_status(Status(StatusCode.ERROR, str(exc)))
            s.record_exception(exc)
            logger.error(f"{name}_failed", error=str(exc), **attrs)
            raise
        s.set_status(Status(StatusCode.OK))
        if log_end:
            logger.debug(f"{name}_completed", **attrs)


@contextmanager
def artifact_operation(
    operation: str,
    *,
    package: str | None = None,
    project_root: str | None = None,
    archive: str | None = None,
    artifact_name: str | None = None,
) -> Iterator[Span]:
    """Create a span for an artifact production step with standard attributes.

    Args:
        operation: Operation name (e.g., "locate_roots", "sign").
        package: Package being located or built.
        project_root: Local project being built.
        archive: Archive being written or signed.
        artifact_name: Descriptor name of the artifact.

    Yields:
        OpenTelemetry Span instance.

    Example:
        >>> with artifact_operation("locate_roots", package="com.example"):
        ...     locator.locate_roots("com.example")
    """
    attrs: dict[str, Any] = {"artifact.operation": operation}
    if package:
        attrs["artifact.package"] = package
    if project_root:
        attrs["artifact.project_root"] = project_root
    if archive:
        attrs["artifact.archive"] = archive
    if artifact_name:
        attrs["artifact.name"] = artifact_name

    with span(f"artifact.{operation}", attributes=attrs) as s:
        yield s
