"""Bounded-concurrency batch driver.

Keeps at most ``parallelism`` pipeline coroutines in flight, refilling the
window as each one finishes, and drains results in completion order from a
single coordinator. Per-target failures are reported and counted; the
batch always runs to the end.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Protocol

from nix_cache_grep.exceptions import ConfigError, TargetError
from nix_cache_grep.pipeline import SearchOutcome
from nix_cache_grep.settings import PROGRESS_EVERY

logger = logging.getLogger(__name__)

ProcessFn = Callable[[str], Awaitable[SearchOutcome]]


@dataclasses.dataclass
class BatchSummary:
    total: int
    processed: int = 0
    matched: int = 0
    failed: int = 0
    max_in_flight: int = 0
    elapsed: float = 0.0

    @property
    def percent(self) -> int:
        if not self.total:
            return 100
        return int(100.0 * self.processed / self.total)


class Reporter(Protocol):
    def found(self, outcome: SearchOutcome) -> None: ...

    def error(self, error: TargetError) -> None: ...

    def progress(self, summary: BatchSummary) -> None: ...

    def finished(self, summary: BatchSummary) -> None: ...


async def run_batch(
    paths: Iterable[str],
    process: ProcessFn,
    *,
    parallelism: int,
    reporter: Reporter,
    total: int | None = None,
    progress_every: int = PROGRESS_EVERY,
) -> BatchSummary:
    """Run ``process`` over every path and report as results arrive."""
    if parallelism < 1:
        raise ConfigError(f"parallelism must be a positive integer, got {parallelism}")
    if total is None:
        paths = list(paths)
        total = len(paths)

    summary = BatchSummary(total=total)
    start = time.monotonic()
    path_iter = iter(paths)
    in_flight: dict[asyncio.Task[SearchOutcome], str] = {}

    def submit_next() -> bool:
        try:
            path = next(path_iter)
        except StopIteration:
            return False
        in_flight[asyncio.create_task(process(path))] = path
        return True

    def record(task: asyncio.Task[SearchOutcome], path: str) -> None:
        try:
            outcome = task.result()
        except TargetError as exc:
            summary.failed += 1
            logger.debug("Target failed", extra=exc.as_log_fields())
            reporter.error(exc)
        except Exception as exc:
            summary.failed += 1
            reporter.error(TargetError(path, exc))
        else:
            if outcome.matched:
                summary.matched += 1
                reporter.found(outcome)

        summary.processed += 1
        if summary.processed % progress_every == 0:
            reporter.progress(summary)

    logger.info("Scanning %d path(s) with parallelism %d", total, parallelism)
    while len(in_flight) < parallelism and submit_next():
        continue
    while in_flight:
        summary.max_in_flight = max(summary.max_in_flight, len(in_flight))
        done, _pending = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            record(task, in_flight.pop(task))
        while len(in_flight) < parallelism and submit_next():
            continue

    summary.elapsed = time.monotonic() - start
    reporter.finished(summary)
    logger.info(
        "Batch finished: processed=%d matched=%d failed=%d elapsed=%.1fs",
        summary.processed,
        summary.matched,
        summary.failed,
        summary.elapsed,
    )
    return summary
