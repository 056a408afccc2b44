from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from botocore.utils import InstanceMetadataRegionFetcher

logger = logging.getLogger(__name__)

RegionProvider = Callable[[], Awaitable[str | None]]


def _retrieve_region(timeout: float) -> str | None:
    fetcher = InstanceMetadataRegionFetcher(timeout=timeout, num_attempts=1)
    return fetcher.retrieve_region()


async def detect_region(timeout: float = 2.0) -> str | None:
    """Best-effort EC2 region lookup through the instance metadata service.

    Returns None off EC2, on any IMDS failure, or when ``timeout`` expires.
    """
    try:
        region = await asyncio.wait_for(asyncio.to_thread(_retrieve_region, timeout), timeout * 2)
    except Exception as exc:
        logger.debug("Region lookup failed: %r", exc)
        return None
    logger.debug("Detected region: %s", region)
    return region


def imds_region_provider(timeout: float = 2.0) -> RegionProvider:
    async def provider() -> str | None:
        return await detect_region(timeout)

    return provider
