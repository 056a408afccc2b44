from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass
class GrepError(Exception):
    message: str
    code: str = "grep_error"
    context: dict[str, Any] = field(default_factory=dict)

    def __init__(self, message: str, *, code: str | None = None, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.code
        self.context = dict(context or {})

    def __str__(self) -> str:
        return self.message

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "error_code": self.code,
            "error_message": self.message,
            "error_context": self.context,
        }


# Pre-flight errors: abort the whole run before any target is processed.


class ConfigError(GrepError):
    code = "config_error"


class CostGuardAbort(GrepError):
    code = "cost_guard_abort"


class RuleCompileError(GrepError):
    code = "rule_compile_error"


# Per-target errors: reported, never abort the batch.


class StorePathError(GrepError):
    code = "store_path_error"


class FetchError(GrepError):
    code = "fetch_error"

    def __init__(self, message: str, *, key: str, status: int | None = None) -> None:
        context: dict[str, Any] = {"key": key}
        if status is not None:
            context["status"] = status
        super().__init__(message, context=context)
        self.key = key
        self.status = status


class NarInfoParseError(GrepError):
    code = "narinfo_parse_error"


class UnsupportedCompressionError(GrepError):
    code = "unsupported_compression"

    def __init__(self, compression: str) -> None:
        super().__init__(
            f"Unknown compression method: {compression}",
            context={"compression": compression},
        )
        self.compression = compression


class NarParseError(GrepError):
    code = "nar_parse_error"


class MatchEngineError(GrepError):
    code = "match_engine_error"


class MatchTimeoutError(MatchEngineError):
    code = "match_timeout"


class TargetError(GrepError):
    """Wraps any failure while analyzing one store path."""

    code = "target_error"

    def __init__(self, path: str, cause: BaseException, *, stage: str | None = None) -> None:
        detail = f" ({stage})" if stage else ""
        super().__init__(
            f"Error while analyzing path {path!r}{detail}: {cause}",
            context={"path": path, "stage": stage, "cause": type(cause).__name__},
        )
        self.path = path
        self.stage = stage
        self.cause = cause
