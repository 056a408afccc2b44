"""Per store path search: hash -> narinfo -> NAR -> per-file match."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Iterator

from nix_cache_grep.exceptions import TargetError
from nix_cache_grep.fetch.base import Fetcher
from nix_cache_grep.logging_config import LogContext, update_log_context
from nix_cache_grep.matchers import Matcher
from nix_cache_grep.nar import NarEntry, fetch_nar
from nix_cache_grep.narinfo import fetch_narinfo
from nix_cache_grep.settings import NIX_STORE_DIR
from nix_cache_grep.store_path import hash_from_path

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class SearchOutcome:
    path: str
    files_matched: dict[str, list[str]] = dataclasses.field(default_factory=dict)

    @property
    def matched(self) -> bool:
        return bool(self.files_matched)

    def add(self, member: str, tags: list[str]) -> None:
        known = self.files_matched.setdefault(member, [])
        known.extend(tag for tag in tags if tag not in known)


def scan_entries(entries: Iterator[NarEntry], matcher: Matcher, outcome: SearchOutcome) -> SearchOutcome:
    """Run ``matcher`` over every regular file; blocking, meant for a worker thread."""
    for entry in entries:
        if not entry.is_file:
            continue
        tags = matcher.matches(entry.read())
        if tags:
            outcome.add(entry.path, tags)
    return outcome


async def find_matches_in_path(
    path: str,
    *,
    fetcher: Fetcher,
    matcher: Matcher,
    store_dir: str = NIX_STORE_DIR,
) -> SearchOutcome:
    """Search one store path.

    A path missing from the cache yields an empty outcome. Every failure is
    raised as :class:`TargetError` naming the path and the stage.
    """
    outcome = SearchOutcome(path)
    with LogContext(target=path):
        stage = "parse path"
        try:
            store_hash = hash_from_path(path, store_dir)

            stage = "fetch narinfo"
            update_log_context(stage=stage)
            narinfo = await fetch_narinfo(fetcher, store_hash)
            if narinfo is None:
                logger.debug("Not in cache, nothing to scan")
                return outcome

            stage = "fetch nar"
            update_log_context(stage=stage)
            entries = await fetch_nar(fetcher, narinfo)

            stage = "scan nar"
            update_log_context(stage=stage)
            await asyncio.to_thread(scan_entries, entries, matcher, outcome)
        except Exception as exc:
            raise TargetError(path, exc, stage=stage) from exc

        logger.debug("Scanned, %d matching file(s)", len(outcome.files_matched))
    return outcome
