"""Backend selection policy.

Small batches always go through the CDN. Large batches use the
requester-pays S3 bucket, which is only free when the caller runs in the
bucket's region; anywhere else the run is refused unless explicitly
overridden.
"""

from __future__ import annotations

import enum
import logging

from nix_cache_grep.exceptions import CostGuardAbort
from nix_cache_grep.fetch.base import Fetcher
from nix_cache_grep.fetch.cdn import CdnFetcher
from nix_cache_grep.fetch.s3 import S3Fetcher, build_s3_client
from nix_cache_grep.region import RegionProvider, imds_region_provider
from nix_cache_grep.settings import NIX_CACHE_REGION, PATHS_COUNT_AWS_THRESHOLD, Settings

logger = logging.getLogger(__name__)

UNKNOWN_REGION = "not-aws"
OVERRIDE_FLAG = "--allow-possibly-expensive-run"


class BackendChoice(enum.Enum):
    CDN = "cdn"
    S3 = "s3"


async def choose_backend(
    target_count: int,
    *,
    allow_expensive: bool = False,
    region_provider: RegionProvider | None = None,
    threshold: int = PATHS_COUNT_AWS_THRESHOLD,
    expected_region: str = NIX_CACHE_REGION,
) -> BackendChoice:
    """Pick the retrieval backend for a batch of ``target_count`` paths.

    Raises:
        CostGuardAbort: large batch, not co-located, no override.
    """
    if target_count < threshold:
        logger.info("Batch of %d paths is below %d, using the CDN", target_count, threshold)
        return BackendChoice.CDN

    if allow_expensive:
        logger.warning("Expensive run explicitly allowed, using S3 with requester-pays")
        return BackendChoice.S3

    provider = region_provider or imds_region_provider()
    region = await provider() or UNKNOWN_REGION
    if region == expected_region:
        logger.info("Running in %s, using S3 with requester-pays", region)
        return BackendChoice.S3

    raise CostGuardAbort(
        f"To avoid unnecessary costs, please run this program in the AWS {expected_region} region. "
        f"This behavior can be overridden with {OVERRIDE_FLAG}.",
        context={
            "target_count": target_count,
            "threshold": threshold,
            "detected_region": region,
            "expected_region": expected_region,
        },
    )


def build_fetcher(choice: BackendChoice, settings: Settings) -> Fetcher:
    if choice is BackendChoice.S3:
        client = build_s3_client(settings.cache_region, max_pool_connections=settings.parallelism)
        return S3Fetcher(settings.s3_bucket, client=client)
    return CdnFetcher(
        settings.cdn_url,
        user_agent=settings.user_agent,
        read_timeout=settings.http_timeout,
        max_connections=settings.parallelism,
    )
