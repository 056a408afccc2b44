"""Fetch and parse ``.narinfo`` descriptors.

A narinfo is line-oriented ``Key: value`` text. Only three keys matter
here::

    URL: nar/1bnp...xz.nar.xz
    Compression: xz
    NarSize: 225064
"""

from __future__ import annotations

import dataclasses
import logging

from nix_cache_grep.exceptions import FetchError, NarInfoParseError
from nix_cache_grep.fetch.base import HTTP_NOT_FOUND, HTTP_OK, Fetcher

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class NarInfo:
    url: str
    compression: str
    nar_size: int


def parse_narinfo(text: str) -> NarInfo:
    fields: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(": ")
        if sep and key in {"URL", "Compression", "NarSize"}:
            fields[key] = value.strip()

    missing = [key for key in ("URL", "Compression", "NarSize") if key not in fields]
    if missing:
        raise NarInfoParseError(
            f"Did not find required narinfo key(s): {', '.join(missing)}",
            context={"missing": missing},
        )
    if not (fields["NarSize"].isascii() and fields["NarSize"].isdigit()):
        raise NarInfoParseError(
            f"Invalid NarSize: {fields['NarSize']!r}",
            context={"NarSize": fields["NarSize"]},
        )
    return NarInfo(
        url=fields["URL"],
        compression=fields["Compression"],
        nar_size=int(fields["NarSize"]),
    )


async def fetch_narinfo(fetcher: Fetcher, store_hash: str) -> NarInfo | None:
    """Return the descriptor for ``store_hash``, or None if the cache lacks it."""
    key = f"{store_hash}.narinfo"
    status, body = await fetcher.download(key)

    if status == HTTP_NOT_FOUND:
        logger.debug("%s not in cache", key)
        return None
    if status != HTTP_OK:
        raise FetchError(f"Unexpected status {status} fetching {key}", key=key, status=status)

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise NarInfoParseError(f"{key} is not valid UTF-8", context={"key": key}) from exc
    return parse_narinfo(text)
