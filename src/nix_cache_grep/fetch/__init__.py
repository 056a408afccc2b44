"""Retrieval backends."""

from nix_cache_grep.fetch.base import HTTP_NOT_FOUND, HTTP_OK, Fetcher
from nix_cache_grep.fetch.cdn import CdnFetcher
from nix_cache_grep.fetch.s3 import S3Fetcher

__all__ = [
    "HTTP_NOT_FOUND",
    "HTTP_OK",
    "Fetcher",
    "CdnFetcher",
    "S3Fetcher",
]
