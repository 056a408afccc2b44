#!/usr/bin/env python3
"""grep-nixos-cache command line entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import functools
import logging
import sys
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from nix_cache_grep.__version__ import __version__
from nix_cache_grep.cost_guard import build_fetcher, choose_backend
from nix_cache_grep.engine import BatchSummary, Reporter, run_batch
from nix_cache_grep.exceptions import ConfigError, CostGuardAbort, RuleCompileError
from nix_cache_grep.logging_config import add_logging_args, configure_logging
from nix_cache_grep.matchers import Matcher, build_matcher
from nix_cache_grep.pipeline import find_matches_in_path
from nix_cache_grep.region import RegionProvider, imds_region_provider
from nix_cache_grep.reporting import ConsoleReporter
from nix_cache_grep.settings import DEFAULT_PARALLELISM, Settings, load_settings
from nix_cache_grep.targets import collect_target_paths

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return number


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="grep-nixos-cache",
        description="Search the files of Nix store paths in the binary cache.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    pattern = parser.add_mutually_exclusive_group()
    pattern.add_argument("--needle", help="String to look for in the target Nix store paths.")
    pattern.add_argument(
        "--yara-ruleset",
        "--yara_ruleset",
        dest="yara_ruleset",
        help="Yara rules file to match against Nix store paths.",
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--path",
        help="Single Nix store path that need to be checked (mostly for testing purposes).",
    )
    source.add_argument(
        "--paths",
        help="Filename containing a newline-separated list of Nix store paths that need to be checked.",
    )
    source.add_argument("--hydra-eval-url", help="Hydra eval URL to get all output Nix store paths from.")

    parser.add_argument(
        "--parallelism",
        type=_positive_int,
        default=None,
        help=f"Number of simultaneous store paths to process in flight (default: {DEFAULT_PARALLELISM}).",
    )
    parser.add_argument(
        "--allow-possibly-expensive-run",
        action="store_true",
        help="Allow possibly expensive runs fetching from S3 with requester-pays.",
    )
    parser.add_argument("--config", default=None, help="Optional YAML settings file.")
    add_logging_args(parser)
    return parser.parse_args(argv)


async def scan(
    paths: list[str],
    *,
    matcher: Matcher,
    settings: Settings,
    reporter: Reporter,
    allow_expensive: bool = False,
    region_provider: RegionProvider | None = None,
) -> BatchSummary:
    """Select the backend for ``paths`` and search all of them.

    Blocking work (S3 reads, decompression, file scans) runs on the loop's
    default executor, sized here to ``settings.parallelism`` so every
    in-flight pipeline can hold a worker thread.
    """
    executor = ThreadPoolExecutor(max_workers=settings.parallelism, thread_name_prefix="grep-nixos-cache")
    asyncio.get_running_loop().set_default_executor(executor)
    try:
        return await _scan(
            paths,
            matcher=matcher,
            settings=settings,
            reporter=reporter,
            allow_expensive=allow_expensive,
            region_provider=region_provider,
        )
    finally:
        executor.shutdown(wait=False)


async def _scan(
    paths: list[str],
    *,
    matcher: Matcher,
    settings: Settings,
    reporter: Reporter,
    allow_expensive: bool,
    region_provider: RegionProvider | None,
) -> BatchSummary:
    choice = await choose_backend(
        len(paths),
        allow_expensive=allow_expensive,
        region_provider=region_provider or imds_region_provider(settings.region_timeout),
        threshold=settings.expensive_threshold,
        expected_region=settings.cache_region,
    )
    fetcher = build_fetcher(choice, settings)
    process = functools.partial(
        find_matches_in_path,
        fetcher=fetcher,
        matcher=matcher,
        store_dir=settings.store_dir,
    )
    try:
        return await run_batch(
            paths,
            process,
            parallelism=settings.parallelism,
            reporter=reporter,
            progress_every=settings.progress_every,
        )
    finally:
        await fetcher.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(level=args.log_level, fmt=args.log_format)

    try:
        settings = load_settings(Path(args.config).expanduser() if args.config else None)
        settings = settings.with_overrides(parallelism=args.parallelism)
        paths = collect_target_paths(
            path=args.path,
            paths_file=args.paths,
            hydra_eval_url=args.hydra_eval_url,
        )
    except ConfigError as exc:
        logger.debug("Invalid configuration", extra=exc.as_log_fields())
        print(f"Error: {exc}")
        return 1

    if not paths:
        print("No paths to check, exiting")
        return 1

    try:
        matcher = build_matcher(
            needle=args.needle,
            yara_ruleset=args.yara_ruleset,
            yara_timeout=settings.yara_timeout,
        )
    except (ConfigError, RuleCompileError) as exc:
        print(exc)
        return 1

    try:
        asyncio.run(
            scan(
                paths,
                matcher=matcher,
                settings=settings,
                reporter=ConsoleReporter(),
                allow_expensive=args.allow_possibly_expensive_run,
            )
        )
    except CostGuardAbort as exc:
        logger.debug("Refusing expensive run", extra=exc.as_log_fields())
        print(exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
