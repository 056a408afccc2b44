"""Run settings.

Every constant the scanner depends on (cache endpoints, the cost-guard
threshold, timeouts) lives on :class:`Settings`. The defaults target the
public cache.nixos.org deployment; an optional YAML file can override any
of them and is validated against ``schemas/settings.schema.json``.
"""

from __future__ import annotations

import dataclasses
import json
from functools import cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator, FormatChecker

from nix_cache_grep.__version__ import __version__
from nix_cache_grep.exceptions import ConfigError

NIX_CACHE_CDN_URL = "https://cache.nixos.org"
NIX_CACHE_S3_BUCKET = "nix-cache"
NIX_CACHE_REGION = "us-east-1"
NIX_STORE_DIR = "/nix/store/"
PATHS_COUNT_AWS_THRESHOLD = 50
USER_AGENT = f"grep-nixos-cache {__version__} (https://github.com/delroth/grep-nixos-cache)"
YARA_TIMEOUT_SECS = 30
DEFAULT_PARALLELISM = 15
PROGRESS_EVERY = 1000

SETTINGS_SCHEMA = "settings"


@dataclasses.dataclass(frozen=True)
class Settings:
    cdn_url: str = NIX_CACHE_CDN_URL
    s3_bucket: str = NIX_CACHE_S3_BUCKET
    cache_region: str = NIX_CACHE_REGION
    expensive_threshold: int = PATHS_COUNT_AWS_THRESHOLD
    store_dir: str = NIX_STORE_DIR
    user_agent: str = USER_AGENT
    yara_timeout: int = YARA_TIMEOUT_SECS
    http_timeout: float = 300.0
    region_timeout: float = 2.0
    progress_every: int = PROGRESS_EVERY
    parallelism: int = DEFAULT_PARALLELISM

    def with_overrides(self, **overrides: Any) -> Settings:
        return dataclasses.replace(self, **{k: v for k, v in overrides.items() if v is not None})


@cache
def load_schema(schema_name: str) -> dict[str, Any]:
    schema_path = resources.files("nix_cache_grep").joinpath("schemas", f"{schema_name}.schema.json")
    return json.loads(schema_path.read_text(encoding="utf-8"))


def validate_config(config: Any, schema_name: str, *, config_path: Path | None = None) -> None:
    validator = Draft7Validator(load_schema(schema_name), format_checker=FormatChecker())
    errors = sorted(validator.iter_errors(config), key=lambda exc: list(exc.path))
    if not errors:
        return
    location = str(config_path) if config_path else "<config>"
    lines = [f"Schema validation failed for {location} ({schema_name})."]
    error_details: list[dict[str, str]] = []
    for error in errors[:10]:
        path = ".".join(str(p) for p in error.path) if error.path else "<root>"
        lines.append(f"- {path}: {error.message}")
        error_details.append({"path": path, "message": error.message})
    if len(errors) > 10:
        lines.append(f"... and {len(errors) - 10} more errors.")
    raise ConfigError(
        "\n".join(lines),
        context={
            "path": location,
            "schema": schema_name,
            "errors": error_details,
            "truncated": len(errors) > 10,
        },
    )


def read_yaml(path: Path, schema_name: str | None = None) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"Cannot read config file {path}: {exc}",
            context={"path": str(path)},
        ) from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"YAML parse error in {path}: {exc}",
            code="yaml_parse_error",
            context={"path": str(path), "error": str(exc)},
        ) from exc
    if data is None:
        data = {}
    if schema_name:
        validate_config(data, schema_name, config_path=path)
    return data


def load_settings(path: Path | None = None) -> Settings:
    """Build run settings, overlaying ``path`` (YAML) on the defaults."""
    if path is None:
        return Settings()
    data = read_yaml(path, schema_name=SETTINGS_SCHEMA)
    return Settings(**data)
