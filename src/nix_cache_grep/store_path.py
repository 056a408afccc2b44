from __future__ import annotations

from nix_cache_grep.exceptions import StorePathError
from nix_cache_grep.settings import NIX_STORE_DIR


def hash_from_path(path: str, store_dir: str = NIX_STORE_DIR) -> str:
    """Return the store hash of ``path``.

    ``/nix/store/abcd1234-name-1.0`` -> ``abcd1234``.
    """
    if not path.startswith(store_dir):
        raise StorePathError(
            f"Path does not start with {store_dir}: {path}",
            context={"path": path, "store_dir": store_dir},
        )
    basename = path[len(store_dir):]
    store_hash, sep, _name = basename.partition("-")
    if not sep:
        raise StorePathError(f"No - in path basename: {path}", context={"path": path})
    if not store_hash or "/" in store_hash:
        raise StorePathError(f"Invalid store hash in path: {path}", context={"path": path})
    return store_hash
