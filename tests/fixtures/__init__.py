"""Test fixtures: NAR serialization, an in-memory fetcher and a recording reporter."""
from __future__ import annotations

import dataclasses
import lzma
import struct
from typing import Any, Union

from nix_cache_grep.engine import BatchSummary
from nix_cache_grep.exceptions import TargetError
from nix_cache_grep.pipeline import SearchOutcome


@dataclasses.dataclass(frozen=True)
class Executable:
    contents: bytes


@dataclasses.dataclass(frozen=True)
class Symlink:
    target: str


NarNode = Union[bytes, Executable, Symlink, dict]


def nar_str(value: bytes) -> bytes:
    return struct.pack("<Q", len(value)) + value + b"\0" * (-len(value) % 8)


def _node(node: NarNode) -> bytes:
    out = [nar_str(b"("), nar_str(b"type")]
    if isinstance(node, (bytes, Executable)):
        out.append(nar_str(b"regular"))
        if isinstance(node, Executable):
            out += [nar_str(b"executable"), nar_str(b"")]
            node = node.contents
        out += [nar_str(b"contents"), nar_str(node)]
    elif isinstance(node, Symlink):
        out += [nar_str(b"symlink"), nar_str(b"target"), nar_str(node.target.encode())]
    else:
        out.append(nar_str(b"directory"))
        for name in sorted(node, key=lambda n: n.encode()):
            out += [
                nar_str(b"entry"),
                nar_str(b"("),
                nar_str(b"name"),
                nar_str(name.encode()),
                nar_str(b"node"),
                _node(node[name]),
                nar_str(b")"),
            ]
    out.append(nar_str(b")"))
    return b"".join(out)


def build_nar(root: NarNode) -> bytes:
    """Serialize a tree (bytes = file, dict = directory) as a NAR."""
    return nar_str(b"nix-archive-1") + _node(root)


def build_nar_xz(root: NarNode) -> bytes:
    return lzma.compress(build_nar(root), format=lzma.FORMAT_XZ)


def narinfo_text(url: str, *, compression: str = "xz", nar_size: int = 0, **extra: Any) -> str:
    lines = [f"StorePath: /nix/store/{url}", f"URL: {url}", f"Compression: {compression}"]
    lines += [f"{key}: {value}" for key, value in extra.items()]
    lines.append(f"NarSize: {nar_size}")
    return "\n".join(lines) + "\n"


class FakeFetcher:
    """In-memory cache: unknown keys answer 403 like cache.nixos.org."""

    name = "fake"

    def __init__(self, objects: dict[str, Any] | None = None) -> None:
        self.objects: dict[str, Any] = dict(objects or {})
        self.requested: list[str] = []
        self.closed = False

    def add_store_path(self, store_hash: str, root: NarNode, *, compression: str = "xz") -> None:
        nar = build_nar(root)
        url = f"nar/{store_hash}.nar.{compression}"
        self.objects[f"{store_hash}.narinfo"] = narinfo_text(url, compression=compression, nar_size=len(nar))
        self.objects[url] = lzma.compress(nar, format=lzma.FORMAT_XZ) if compression == "xz" else nar

    async def download(self, key: str) -> tuple[int, bytes]:
        self.requested.append(key)
        value = self.objects.get(key)
        if value is None:
            return 403, b""
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, tuple):
            return value
        if isinstance(value, str):
            value = value.encode()
        return 200, value

    async def aclose(self) -> None:
        self.closed = True


class RecordingReporter:
    def __init__(self) -> None:
        self.found_outcomes: list[SearchOutcome] = []
        self.errors: list[TargetError] = []
        self.progress_lines: list[tuple[int, int, int]] = []
        self.summary: BatchSummary | None = None

    def found(self, outcome: SearchOutcome) -> None:
        self.found_outcomes.append(outcome)

    def error(self, error: TargetError) -> None:
        self.errors.append(error)

    def progress(self, summary: BatchSummary) -> None:
        self.progress_lines.append((summary.processed, summary.total, summary.percent))

    def finished(self, summary: BatchSummary) -> None:
        self.summary = summary
