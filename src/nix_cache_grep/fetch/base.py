"""Retrieval backend interface.

A backend turns a cache key (``<hash>.narinfo`` or ``nar/<file>.nar.xz``)
into ``(status, body)``. Backends are built once per run and shared by
every in-flight pipeline, so implementations keep no per-call state.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

HTTP_OK = 200
# What the cache answers for a key it does not hold.
HTTP_NOT_FOUND = 403


@runtime_checkable
class Fetcher(Protocol):
    name: str

    async def download(self, key: str) -> tuple[int, bytes]:
        """Fetch ``key`` and return the status code and the full body."""
        ...

    async def aclose(self) -> None:
        ...
