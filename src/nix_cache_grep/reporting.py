from __future__ import annotations

import sys
from typing import TextIO

from nix_cache_grep.engine import BatchSummary
from nix_cache_grep.exceptions import TargetError
from nix_cache_grep.pipeline import SearchOutcome


def format_found(outcome: SearchOutcome) -> str:
    files = ", ".join(f"{member!r}: {tags!r}" for member, tags in sorted(outcome.files_matched.items()))
    return f"Found in {outcome.path}: {{{files}}}"


def format_progress(summary: BatchSummary) -> str:
    return f"Processed {summary.processed} out of {summary.total} ({summary.percent}%)"


class ConsoleReporter:
    """Operator-facing output: one line per match, per error, per progress tick."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout

    def _emit(self, line: str) -> None:
        print(line, file=self.stream, flush=True)

    def found(self, outcome: SearchOutcome) -> None:
        self._emit(format_found(outcome))

    def error(self, error: TargetError) -> None:
        self._emit(f"Error: {error}")

    def progress(self, summary: BatchSummary) -> None:
        self._emit(format_progress(summary))

    def finished(self, summary: BatchSummary) -> None:
        self._emit(
            f"Done: {summary.processed} path(s) checked, {summary.matched} with matches, "
            f"{summary.failed} failed ({summary.elapsed:.1f}s)"
        )
