"""Tests for narinfo parsing and retrieval."""

from __future__ import annotations

import asyncio

import pytest

from nix_cache_grep.exceptions import FetchError, NarInfoParseError
from nix_cache_grep.narinfo import NarInfo, fetch_narinfo, parse_narinfo
from tests.fixtures import FakeFetcher, narinfo_text

SAMPLE = """StorePath: /nix/store/0c0sz1a9ln0cv8r2vq5hnkd8mwp8sqb4-hello-2.12.1
URL: nar/1bnp8xjm1p0h4ymv0prfp8ji6hyb5rlqmmb34prm9pqhl5r6yq1p.nar.xz
Compression: xz
FileHash: sha256:1bnp8xjm1p0h4ymv0prfp8ji6hyb5rlqmmb34prm9pqhl5r6yq1p
FileSize: 50184
NarHash: sha256:0ph3bx7ajz5fb8ih1dmnpzlhjqdy2ycbz0dh1ay7pq5j1r0l4i0j
NarSize: 226488
References: 0c0sz1a9ln0cv8r2vq5hnkd8mwp8sqb4-hello-2.12.1
"""


class TestParseNarinfo:
    def test_parses_required_fields(self) -> None:
        info = parse_narinfo(SAMPLE)
        assert info == NarInfo(
            url="nar/1bnp8xjm1p0h4ymv0prfp8ji6hyb5rlqmmb34prm9pqhl5r6yq1p.nar.xz",
            compression="xz",
            nar_size=226488,
        )

    @pytest.mark.parametrize("key", ["URL", "Compression", "NarSize"])
    def test_missing_key_fails(self, key: str) -> None:
        text = "\n".join(line for line in SAMPLE.splitlines() if not line.startswith(f"{key}:"))
        with pytest.raises(NarInfoParseError) as excinfo:
            parse_narinfo(text)
        assert key in str(excinfo.value)
        assert excinfo.value.context["missing"] == [key]

    @pytest.mark.parametrize("value", ["abc", "-1", "12.5", ""])
    def test_invalid_nar_size(self, value: str) -> None:
        with pytest.raises(NarInfoParseError):
            parse_narinfo(f"URL: nar/x.nar.xz\nCompression: xz\nNarSize: {value}\n")

    def test_unknown_keys_ignored(self) -> None:
        info = parse_narinfo("Sig: cache.nixos.org-1:abc\nURL: a\nCompression: none\nNarSize: 0\nDeriver: x.drv\n")
        assert info == NarInfo(url="a", compression="none", nar_size=0)

    def test_empty_text(self) -> None:
        with pytest.raises(NarInfoParseError):
            parse_narinfo("")


class TestFetchNarinfo:
    def test_not_found_is_none(self) -> None:
        fetcher = FakeFetcher()
        assert asyncio.run(fetch_narinfo(fetcher, "abcd")) is None
        assert fetcher.requested == ["abcd.narinfo"]

    def test_success(self) -> None:
        fetcher = FakeFetcher({"abcd.narinfo": narinfo_text("nar/abcd.nar.xz", nar_size=42)})
        info = asyncio.run(fetch_narinfo(fetcher, "abcd"))
        assert info == NarInfo(url="nar/abcd.nar.xz", compression="xz", nar_size=42)

    def test_server_error_is_fatal(self) -> None:
        fetcher = FakeFetcher({"abcd.narinfo": (500, b"URL: oops\n")})
        with pytest.raises(FetchError) as excinfo:
            asyncio.run(fetch_narinfo(fetcher, "abcd"))
        assert excinfo.value.status == 500
        assert excinfo.value.context["key"] == "abcd.narinfo"

    def test_404_is_fatal(self) -> None:
        fetcher = FakeFetcher({"abcd.narinfo": (404, b"")})
        with pytest.raises(FetchError):
            asyncio.run(fetch_narinfo(fetcher, "abcd"))

    def test_non_utf8_body(self) -> None:
        fetcher = FakeFetcher({"abcd.narinfo": (200, b"\xff\xfe")})
        with pytest.raises(NarInfoParseError):
            asyncio.run(fetch_narinfo(fetcher, "abcd"))
