"""S3 retrieval backend for the requester-pays ``nix-cache`` bucket.

Only cheap when run from the bucket's own region; :mod:`nix_cache_grep.cost_guard`
decides whether this backend may be used at all.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from nix_cache_grep.exceptions import FetchError
from nix_cache_grep.fetch.base import HTTP_NOT_FOUND, HTTP_OK
from nix_cache_grep.settings import NIX_CACHE_REGION, NIX_CACHE_S3_BUCKET

logger = logging.getLogger(__name__)

REQUEST_PAYER = "requester"

# Error codes S3 uses for an object that is not there. Without ListBucket
# permission a missing key comes back as AccessDenied rather than NoSuchKey.
_ABSENT_OBJECT_CODES = frozenset({"NoSuchKey", "404", "AccessDenied", "403"})
_DENIED_CODES = frozenset({"AccessDenied", "403"})


def build_s3_client(region: str = NIX_CACHE_REGION, *, max_pool_connections: int = 10) -> Any:
    session = boto3.session.Session()
    return session.client(
        "s3",
        region_name=region,
        config=Config(max_pool_connections=max_pool_connections),
    )


def _error_code(exc: ClientError) -> str:
    error = exc.response.get("Error", {}) or {}
    return str(error.get("Code", ""))


def _http_status(exc: ClientError) -> int | None:
    return (exc.response.get("ResponseMetadata", {}) or {}).get("HTTPStatusCode")


def _is_absent_object(exc: ClientError) -> bool:
    return _error_code(exc) in _ABSENT_OBJECT_CODES or _http_status(exc) in {403, 404}


def _is_denied(exc: ClientError) -> bool:
    return _error_code(exc) in _DENIED_CODES or _http_status(exc) == 403


class S3Fetcher:
    """Fetch cache objects with an authenticated, requester-pays GetObject.

    S3 has no status code to hand back, so a successful read is reported as
    200 and an absent object as 403, the code the CDN in front of the same
    bucket uses. Anything else raises :class:`FetchError`.
    """

    name = "s3"

    def __init__(self, bucket: str = NIX_CACHE_S3_BUCKET, *, client: Any | None = None) -> None:
        self.bucket = bucket
        self._client = client if client is not None else build_s3_client()
        self._denied_warned = False
        self._lock = threading.Lock()

    def _warn_denied_once(self, key: str) -> None:
        with self._lock:
            if self._denied_warned:
                return
            self._denied_warned = True
        logger.warning(
            "S3 denied access to s3://%s/%s; treating denied objects as not cached. "
            "Check that the credentials allow requester-pays reads if nothing is found.",
            self.bucket,
            key,
        )

    def _get_object(self, key: str) -> tuple[int, bytes]:
        try:
            response = self._client.get_object(
                Bucket=self.bucket,
                Key=key,
                RequestPayer=REQUEST_PAYER,
            )
            body = response["Body"].read()
        except ClientError as exc:
            if _is_absent_object(exc):
                if _is_denied(exc):
                    self._warn_denied_once(key)
                logger.debug("s3://%s/%s is absent: %s", self.bucket, key, exc)
                return HTTP_NOT_FOUND, b""
            raise FetchError(f"GetObject s3://{self.bucket}/{key} failed: {exc}", key=key) from exc
        except BotoCoreError as exc:
            raise FetchError(f"GetObject s3://{self.bucket}/{key} failed: {exc}", key=key) from exc
        return HTTP_OK, body

    async def download(self, key: str) -> tuple[int, bytes]:
        return await asyncio.to_thread(self._get_object, key.lstrip("/"))

    async def aclose(self) -> None:
        await asyncio.to_thread(self._client.close)
