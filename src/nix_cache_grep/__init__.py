"""Search the files of Nix store paths in the Nix binary cache."""

from nix_cache_grep.__version__ import __version__
from nix_cache_grep.matchers import NeedleMatcher, YaraMatcher, build_matcher
from nix_cache_grep.narinfo import NarInfo, fetch_narinfo, parse_narinfo
from nix_cache_grep.pipeline import SearchOutcome, find_matches_in_path
from nix_cache_grep.store_path import hash_from_path

__all__ = [
    "__version__",
    "NarInfo",
    "NeedleMatcher",
    "SearchOutcome",
    "YaraMatcher",
    "build_matcher",
    "fetch_narinfo",
    "find_matches_in_path",
    "hash_from_path",
    "parse_narinfo",
]
