"""
Shared pytest fixtures for grep-nixos-cache tests.

Provides:
- An in-memory cache fetcher
- A recording reporter
- A deterministic region provider
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if SRC_ROOT.is_dir():
    sys.path.insert(0, str(SRC_ROOT))

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from tests.fixtures import FakeFetcher, RecordingReporter  # noqa: E402


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def region_stub() -> Callable[[str | None], Callable]:
    """Build a region provider that answers ``region`` and counts calls."""

    def _create(region: str | None):
        async def provider() -> str | None:
            provider.calls += 1
            return region

        provider.calls = 0
        return provider

    return _create


@pytest.fixture
def store_path() -> Callable[[str, str], str]:
    def _create(store_hash: str, name: str = "hello-2.12") -> str:
        return f"/nix/store/{store_hash}-{name}"

    return _create
