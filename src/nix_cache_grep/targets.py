from __future__ import annotations

import logging
from pathlib import Path

from nix_cache_grep.exceptions import ConfigError

logger = logging.getLogger(__name__)


def read_paths_file(path: Path) -> list[str]:
    """Read a newline-separated list of store paths, skipping blank lines."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read paths file {path}: {exc}", context={"path": str(path)}) from exc
    return [line.strip() for line in text.splitlines() if line.strip()]


def paths_from_hydra_eval(url: str) -> list[str]:
    # Hydra does not expose eval outputs in a usable form yet.
    logger.warning("Reading output paths from Hydra eval URLs is currently unsupported: %s", url)
    return []


def collect_target_paths(
    *,
    path: str | None = None,
    paths_file: str | Path | None = None,
    hydra_eval_url: str | None = None,
) -> list[str]:
    given = [value for value in (path, paths_file, hydra_eval_url) if value is not None]
    if len(given) > 1:
        raise ConfigError("--path, --paths and --hydra-eval-url are mutually exclusive")
    if path is not None:
        return [path]
    if paths_file is not None:
        return read_paths_file(Path(paths_file).expanduser())
    if hydra_eval_url is not None:
        return paths_from_hydra_eval(hydra_eval_url)
    return []
