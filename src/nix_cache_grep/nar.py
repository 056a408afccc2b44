"""NAR (Nix ARchive) download, decompression and parsing.

Wire format: every token is a string serialized as a little-endian u64
length, the bytes, then zero padding up to a multiple of 8. An archive is
the magic ``nix-archive-1`` followed by one node::

    ( type regular [executable ""] contents <bytes> )
    ( type symlink target <target> )
    ( type directory [entry ( name <name> node <node> )]* )

The whole decompressed archive is held in memory; entries are yielded
lazily from it, with file contents exposed as zero-copy memoryviews. The
practical archive size limit is therefore available RAM (compressed
payload, decompressed buffer, and one materialized file at a time).
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import lzma
import struct
from collections.abc import Callable, Iterator

from nix_cache_grep.exceptions import FetchError, NarParseError, UnsupportedCompressionError
from nix_cache_grep.fetch.base import HTTP_OK, Fetcher
from nix_cache_grep.narinfo import NarInfo

logger = logging.getLogger(__name__)

NAR_MAGIC = b"nix-archive-1"
MAX_DEPTH = 256

_U64 = struct.Struct("<Q")


class NarKind(enum.Enum):
    REGULAR = "regular"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


@dataclasses.dataclass(frozen=True)
class NarEntry:
    path: str
    kind: NarKind
    size: int = 0
    executable: bool = False
    target: str | None = None
    data: memoryview | None = dataclasses.field(default=None, repr=False, compare=False)

    @property
    def is_file(self) -> bool:
        return self.kind is NarKind.REGULAR

    def read(self) -> bytes:
        """Materialize the file contents (empty for non-files)."""
        if self.data is None:
            return b""
        return self.data.tobytes()


def _decompress_xz(payload: bytes) -> bytes:
    try:
        return lzma.decompress(payload, format=lzma.FORMAT_XZ)
    except lzma.LZMAError as exc:
        raise NarParseError(f"Corrupt xz payload: {exc}", context={"compression": "xz"}) from exc


_DECOMPRESSORS: dict[str, Callable[[bytes], bytes]] = {
    "xz": _decompress_xz,
}


def get_decompressor(compression: str) -> Callable[[bytes], bytes]:
    try:
        return _DECOMPRESSORS[compression]
    except KeyError:
        raise UnsupportedCompressionError(compression) from None


def decompress(payload: bytes, compression: str, size_hint: int | None = None) -> bytes:
    data = get_decompressor(compression)(payload)
    if size_hint is not None and len(data) != size_hint:
        logger.debug("Decompressed %d bytes, narinfo announced %d", len(data), size_hint)
    return data


class _NarReader:
    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._view = memoryview(data)
        self._pos = 0

    def at_end(self) -> bool:
        return self._pos == len(self._view)

    def _take(self, n: int) -> memoryview:
        end = self._pos + n
        if end > len(self._view):
            raise NarParseError(
                f"Truncated NAR: wanted {n} bytes at offset {self._pos}, have {len(self._view) - self._pos}",
                context={"offset": self._pos},
            )
        chunk = self._view[self._pos:end]
        self._pos = end
        return chunk

    def read_int(self) -> int:
        return _U64.unpack(self._take(8))[0]

    def read_view(self) -> memoryview:
        n = self.read_int()
        chunk = self._take(n)
        padding = self._take(-n % 8)
        if any(padding):
            raise NarParseError("Non-zero NAR string padding", context={"offset": self._pos})
        return chunk

    def read_bytes(self) -> bytes:
        return self.read_view().tobytes()

    def expect(self, token: bytes) -> None:
        got = self.read_bytes()
        if got != token:
            raise NarParseError(
                f"Expected {token!r} in NAR, got {got[:64]!r}",
                context={"offset": self._pos},
            )


def _check_entry_name(name: bytes, parent: str) -> None:
    if name in (b"", b".", b"..") or b"/" in name or b"\0" in name:
        raise NarParseError(
            f"Invalid NAR entry name {name!r} under {parent}",
            context={"parent": parent},
        )


def _join(parent: str, name: str) -> str:
    return f"{parent.rstrip('/')}/{name}"


def _parse_node(reader: _NarReader, path: str, depth: int) -> Iterator[NarEntry]:
    if depth > MAX_DEPTH:
        raise NarParseError(f"NAR nesting deeper than {MAX_DEPTH} at {path}")
    reader.expect(b"(")
    reader.expect(b"type")
    node_type = reader.read_bytes()

    if node_type == b"regular":
        tag = reader.read_bytes()
        executable = False
        if tag == b"executable":
            reader.expect(b"")
            executable = True
            tag = reader.read_bytes()
        if tag != b"contents":
            raise NarParseError(f"Expected 'contents' for {path}, got {tag[:64]!r}")
        contents = reader.read_view()
        reader.expect(b")")
        yield NarEntry(path, NarKind.REGULAR, size=len(contents), executable=executable, data=contents)

    elif node_type == b"symlink":
        reader.expect(b"target")
        target = reader.read_bytes().decode("utf-8", errors="surrogateescape")
        reader.expect(b")")
        yield NarEntry(path, NarKind.SYMLINK, target=target)

    elif node_type == b"directory":
        yield NarEntry(path, NarKind.DIRECTORY)
        previous: bytes | None = None
        while True:
            tag = reader.read_bytes()
            if tag == b")":
                break
            if tag != b"entry":
                raise NarParseError(f"Expected 'entry' in directory {path}, got {tag[:64]!r}")
            reader.expect(b"(")
            reader.expect(b"name")
            name = reader.read_bytes()
            _check_entry_name(name, path)
            if previous is not None and name <= previous:
                raise NarParseError(f"NAR directory {path} entries are not sorted")
            previous = name
            reader.expect(b"node")
            child = _join(path, name.decode("utf-8", errors="surrogateescape"))
            yield from _parse_node(reader, child, depth + 1)
            reader.expect(b")")

    else:
        raise NarParseError(f"Unknown NAR node type {node_type[:64]!r} at {path}")


def iter_nar_entries(data: bytes | bytearray | memoryview) -> Iterator[NarEntry]:
    """Yield every entry of the NAR in ``data``, depth-first in archive order.

    The root node is ``/``. Single pass; raises :class:`NarParseError` as
    soon as malformed input is reached.
    """
    reader = _NarReader(data)
    reader.expect(NAR_MAGIC)
    yield from _parse_node(reader, "/", 0)
    if not reader.at_end():
        raise NarParseError("Trailing data after NAR root node")


async def fetch_nar(fetcher: Fetcher, narinfo: NarInfo) -> Iterator[NarEntry]:
    """Download, decompress and open the NAR described by ``narinfo``."""
    # Fail on an unknown algorithm before paying for the download.
    get_decompressor(narinfo.compression)

    status, payload = await fetcher.download(narinfo.url)
    if status != HTTP_OK:
        raise FetchError(
            f"Unexpected status {status} fetching {narinfo.url}",
            key=narinfo.url,
            status=status,
        )

    data = await asyncio.to_thread(decompress, payload, narinfo.compression, narinfo.nar_size)
    return iter_nar_entries(data)
