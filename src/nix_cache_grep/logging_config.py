"""Diagnostic logging on stderr.

Operator output (matches, per-path errors, progress) is printed by
:mod:`nix_cache_grep.reporting`; log records are for debugging a run. Every
pipeline runs in its own asyncio task with a copy of the current context,
so fields set through :class:`LogContext` (``target``, ``stage``) stay with
the store path being scanned and are appended to each record.
"""

from __future__ import annotations

import contextvars
import json
import logging
import time
from typing import Any

from nix_cache_grep.secrets import redact_string, redact_structure

_CONFIGURED = False

# Attributes set through ``extra=GrepError.as_log_fields()``.
ERROR_FIELDS = ("error_code", "error_message", "error_context")

# Libraries that log request details at INFO or DEBUG.
_NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "httpx", "httpcore")

_scan_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("scan_context")


def get_log_context() -> dict[str, Any]:
    return dict(_scan_context.get({}))


def update_log_context(**fields: Any) -> None:
    """Merge ``fields`` into the context of the current task."""
    _scan_context.set({**_scan_context.get({}), **fields})


def clear_log_context() -> None:
    _scan_context.set({})


class LogContext:
    """Attach ``fields`` to every record logged inside the ``with`` block.

    Fields added with :func:`update_log_context` inside the block are
    dropped on exit as well.
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._token: contextvars.Token | None = None

    def __enter__(self) -> LogContext:
        self._token = _scan_context.set({**_scan_context.get({}), **self.fields})
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._token is not None:
            _scan_context.reset(self._token)
            self._token = None


def _render_message(record: logging.LogRecord) -> str:
    msg = redact_structure(record.msg)
    args = redact_structure(record.args)
    if not args:
        return redact_string(str(msg))
    try:
        return redact_string(str(msg) % args)
    except (TypeError, ValueError):
        return redact_string(str(msg))


def _error_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {name: getattr(record, name) for name in ERROR_FIELDS if hasattr(record, name)}


class TextFormatter(logging.Formatter):
    """``time | LEVEL | logger | message | key=value ...``, times in UTC."""

    converter = time.gmtime

    def __init__(self) -> None:
        super().__init__("%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        scrubbed = logging.makeLogRecord(record.__dict__)
        scrubbed.msg = _render_message(record)
        scrubbed.args = None
        line = super().format(scrubbed)

        fields = {**get_log_context(), **_error_fields(record)}
        if fields:
            rendered = " ".join(f"{key}={value}" for key, value in sorted(redact_structure(fields).items()))
            line = f"{line} | {rendered}"
        return redact_string(line)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with scan context and error fields."""

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": _render_message(record),
        }
        context = get_log_context()
        if context:
            payload["context"] = redact_structure(context)
        payload.update(redact_structure(_error_fields(record)))
        if record.exc_info:
            payload["exc_info"] = redact_string(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        return logging.WARNING
    return logging._nameToLevel.get(str(level).upper(), logging.WARNING)


def configure_logging(*, level: str | int | None = None, fmt: str = "text") -> None:
    """Install one stderr handler on the root logger; later calls are no-ops."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    root = logging.getLogger()
    root.setLevel(_resolve_level(level))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter() if fmt.lower() == "json" else TextFormatter())
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.WARNING))

    _CONFIGURED = True


def add_logging_args(parser: Any) -> None:
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Diagnostic logging level on stderr (default: WARNING)",
    )
    parser.add_argument(
        "--log-format",
        default="text",
        choices=["text", "json"],
        help="Diagnostic logging format (default: text)",
    )
