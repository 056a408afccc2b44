"""File content matchers.

A matcher is built once per run and shared by every in-flight pipeline;
``matches`` must not mutate it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yara

from nix_cache_grep.exceptions import (
    ConfigError,
    MatchEngineError,
    MatchTimeoutError,
    RuleCompileError,
)
from nix_cache_grep.settings import YARA_TIMEOUT_SECS

logger = logging.getLogger(__name__)

NEEDLE_TAG = "needle"


@runtime_checkable
class Matcher(Protocol):
    def matches(self, haystack: bytes) -> list[str]:
        """Return the tags matching ``haystack``, in match order; empty if none."""
        ...


class NeedleMatcher:
    """Literal byte-string search."""

    def __init__(self, needle: str | bytes) -> None:
        # Own a copy; str needles are searched as their UTF-8 encoding.
        self.needle = needle.encode("utf-8") if isinstance(needle, str) else bytes(needle)
        if not self.needle:
            raise ConfigError("--needle must not be empty")

    def matches(self, haystack: bytes) -> list[str]:
        if haystack.find(self.needle) != -1:
            return [NEEDLE_TAG]
        return []

    def __repr__(self) -> str:
        return f"NeedleMatcher({self.needle!r})"


class YaraMatcher:
    """Scan with a compiled YARA rule set; tags are rule identifiers."""

    def __init__(self, rules: Any, *, timeout: int = YARA_TIMEOUT_SECS) -> None:
        self._rules = rules
        self.timeout = timeout

    @classmethod
    def from_file(cls, path: str | Path, *, timeout: int = YARA_TIMEOUT_SECS) -> YaraMatcher:
        try:
            rules = yara.compile(filepath=str(path))
        except yara.Error as exc:
            raise RuleCompileError(
                f"Failed to parse Yara ruleset {path}: {exc}",
                context={"path": str(path)},
            ) from exc
        logger.info("Compiled Yara ruleset %s", path)
        return cls(rules, timeout=timeout)

    @classmethod
    def from_source(cls, source: str, *, timeout: int = YARA_TIMEOUT_SECS) -> YaraMatcher:
        try:
            rules = yara.compile(source=source)
        except yara.Error as exc:
            raise RuleCompileError(f"Failed to parse Yara ruleset: {exc}") from exc
        return cls(rules, timeout=timeout)

    def matches(self, haystack: bytes) -> list[str]:
        try:
            found = self._rules.match(data=haystack, timeout=self.timeout)
        except yara.TimeoutError as exc:
            raise MatchTimeoutError(
                f"Yara scan exceeded {self.timeout}s",
                context={"timeout": self.timeout},
            ) from exc
        except yara.Error as exc:
            raise MatchEngineError(f"Yara scan failed: {exc}") from exc
        return [match.rule for match in found]


def build_matcher(
    *,
    needle: str | None = None,
    yara_ruleset: str | None = None,
    yara_timeout: int = YARA_TIMEOUT_SECS,
) -> Matcher:
    if needle is not None and yara_ruleset is not None:
        raise ConfigError("--needle and --yara-ruleset are mutually exclusive")
    if needle is not None:
        return NeedleMatcher(needle)
    if yara_ruleset is not None:
        return YaraMatcher.from_file(yara_ruleset, timeout=yara_timeout)
    raise ConfigError("No matcher provided, please use either --needle or --yara-ruleset")
