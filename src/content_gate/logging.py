"""Structured logging configuration for the remote content gate."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import UTC, datetime
from typing import Any

# Context fields rendered by both formatters when present on a record.
CONTEXT_FIELDS: tuple[str, ...] = ("call_site", "shard_key", "url", "decision")

# Name of the stderr handler installed by ``setup_logging``.
HANDLER_NAME = "content_gate"


class DiagnosticFilter(logging.Filter):
    """Suppress tagged DEBUG records unless their tag is enabled.

    Gate components tag their chatty debug lines with ``network``,
    ``cache`` or ``resolver`` through ``extra={"diagnostic_tag": ...}``.
    Only those records are filtered; untagged records and anything above
    DEBUG always pass.  ``CONTENT_GATE_DIAGNOSTIC_TAGS=network,cache``
    turns two tags on, ``*`` turns all of them on.

    Attributes:
        enabled_tags: Tags whose DEBUG records are emitted.
        allow_all: ``*`` was configured.
    """

    def __init__(self, enabled_tags: frozenset[str] | None = None) -> None:
        super().__init__()
        self.enabled_tags: frozenset[str] = enabled_tags or frozenset()
        self.allow_all: bool = "*" in self.enabled_tags

    def filter(self, record: logging.LogRecord) -> bool:
        tag: str | None = getattr(record, "diagnostic_tag", None)
        if record.levelno != logging.DEBUG or tag is None:
            return True
        return self.allow_all or tag in self.enabled_tags

    @classmethod
    def from_config_string(cls, tags_csv: str) -> DiagnosticFilter:
        """Build a filter from ``CONTENT_GATE_DIAGNOSTIC_TAGS``.

        Args:
            tags_csv: Comma-separated tags; blanks are ignored.
        """
        return cls(frozenset(tag.strip() for tag in tags_csv.split(",") if tag.strip()))


def _component(record: logging.LogRecord) -> str:
    # "content_gate.resolver" -> "resolver"
    return record.name.rsplit(".", 1)[-1]


def _context(record: logging.LogRecord) -> dict[str, Any]:
    """Context fields present on *record*, in ``CONTEXT_FIELDS`` order."""
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=UTC)


class StructuredFormatter(logging.Formatter):
    """One human-readable line per record.

    ``2026-01-15 12:00:00.000 [INFO    ] [resolver    ] [call_site=startup] message``
    """

    def format(self, record: logging.LogRecord) -> str:
        fields = [
            _timestamp(record).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3],
            f"[{record.levelname:8}]",
            f"[{_component(record):12}]",
        ]
        context = _context(record)
        if context:
            fields.append("[" + " ".join(f"{k}={v}" for k, v in context.items()) + "]")
        fields.append(record.getMessage())
        if record.exc_info:
            fields.append(self.formatException(record.exc_info))
        return " ".join(fields)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, context fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "component": _component(record),
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ContextAdapter(logging.LoggerAdapter[logging.Logger]):
    """Logger adapter carrying resolution context (call site, shard key, url).

    Per-call ``extra`` entries win over the adapter's context, so a log line
    about a specific URL can name it even when the adapter was bound to
    another one.  The caller's ``extra`` dict is never modified.

    Usage:
        log = get_logger(__name__).with_context(call_site="startup")
        log.info("Resolving", extra={"url": candidate})
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


class GateLogger(logging.Logger):
    """Custom logger with context support."""

    def with_context(self, **context: Any) -> ContextAdapter:
        """Create a logger adapter with additional context.

        Args:
            **context: Context fields to add to all log messages.

        Returns:
            ContextAdapter with the specified context.
        """
        return ContextAdapter(self, context)


logging.setLoggerClass(GateLogger)


def get_logger(name: str) -> GateLogger:
    """Get a logger with the custom GateLogger class.

    Args:
        name: Logger name (typically __name__).

    Returns:
        GateLogger instance.
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    replace_handlers: bool = True,
    diagnostic_tags: str = "",
) -> None:
    """Install the content gate's stderr handler on the root logger.

    Calling this again swaps the previously installed gate handler for a new
    one instead of stacking a second copy, so repeated bootstraps in one
    process never duplicate output.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR).
        json_format: If True, output JSON-formatted logs.
        replace_handlers: If True, remove every root handler first. Set to
            False when the host application owns the other root handlers.
        diagnostic_tags: Comma-separated list of diagnostic tags to enable.
            ``"*"`` enables all tagged diagnostics.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for existing in root_logger.handlers[:]:
        if replace_handlers or existing.get_name() == HANDLER_NAME:
            root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if json_format else StructuredFormatter())
    handler.addFilter(DiagnosticFilter.from_config_string(diagnostic_tags))
    root_logger.addHandler(handler)

    logging.getLogger("content_gate").setLevel(numeric_level)
