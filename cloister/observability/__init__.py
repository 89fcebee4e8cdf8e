"""Observability helpers."""

from cloister.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_discovery,
    record_parser_failure,
    record_watcher_event,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_discovery",
    "record_parser_failure",
    "record_watcher_event",
]
