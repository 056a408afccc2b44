"""CDN retrieval backend (plain HTTPS against cache.nixos.org)."""

from __future__ import annotations

import logging

import httpx

from nix_cache_grep.exceptions import FetchError
from nix_cache_grep.settings import NIX_CACHE_CDN_URL, USER_AGENT

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 15.0
DEFAULT_READ_TIMEOUT = 300.0


class CdnFetcher:
    """Fetch cache objects with ``GET {base_url}/{key}``.

    Status and body are returned verbatim; only transport failures raise.
    One ``httpx.AsyncClient`` (and its connection pool) is shared by all
    concurrent downloads.
    """

    name = "cdn"

    def __init__(
        self,
        base_url: str = NIX_CACHE_CDN_URL,
        *,
        user_agent: str = USER_AGENT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        max_connections: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        timeout = httpx.Timeout(
            connect=DEFAULT_CONNECT_TIMEOUT,
            read=read_timeout,
            write=None,
            pool=None,
        )
        limits = httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections)
        self._client = httpx.AsyncClient(
            headers={"User-Agent": user_agent},
            timeout=timeout,
            limits=limits,
            follow_redirects=True,
            transport=transport,
        )

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key.lstrip('/')}"

    async def download(self, key: str) -> tuple[int, bytes]:
        url = self.url_for(key)
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise FetchError(f"GET {url} failed: {exc!r}", key=key) from exc
        logger.debug("GET %s -> %d (%d bytes)", url, response.status_code, len(response.content))
        return response.status_code, response.content

    async def aclose(self) -> None:
        await self._client.aclose()
