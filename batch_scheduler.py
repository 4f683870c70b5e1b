"""
Batch Scheduler - resolves many package names without flooding the device

Ids are processed in fixed-size groups.  Inside a group every resolution
runs concurrently in a worker thread; between groups the scheduler sleeps
for the pacing delay so the single adb link gets a breather.
"""

import asyncio
import logging
from typing import Dict, List, Sequence

from name_resolver import NameResolver, ResolvedName, fallback_name

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3
DEFAULT_PACING_DELAY = 0.1  # seconds


class BatchScheduler:
    """Fan-out/fan-in over NameResolver with a concurrency cap."""

    def __init__(
        self,
        resolver: NameResolver,
        concurrency: int = DEFAULT_CONCURRENCY,
        pacing_delay: float = DEFAULT_PACING_DELAY,
    ):
        self.resolver = resolver
        self.concurrency = concurrency
        self.pacing_delay = pacing_delay

    async def _resolve_one(self, package_id: str) -> ResolvedName:
        try:
            return await asyncio.to_thread(self.resolver.resolve, package_id)
        except Exception as e:
            logger.error(f"Error getting app name for {package_id}: {e}")
            return fallback_name(package_id)

    async def resolve_all(
        self,
        package_ids: Sequence[str],
        concurrency: int = None,
        pacing_delay: float = None,
    ) -> Dict[str, ResolvedName]:
        """
        Resolve every id; the result has one key per distinct input id.

        Failures are contained per id (they become synthesised names), so
        this coroutine only raises for a non-positive concurrency.
        """
        concurrency = self.concurrency if concurrency is None else concurrency
        pacing_delay = self.pacing_delay if pacing_delay is None else pacing_delay
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")

        unique_ids: List[str] = list(dict.fromkeys(package_ids))
        results: Dict[str, ResolvedName] = {}
        if not unique_ids:
            return results

        total_batches = (len(unique_ids) + concurrency - 1) // concurrency
        logger.info(
            f"Getting app names for {len(unique_ids)} packages in batches of {concurrency}"
        )

        for start in range(0, len(unique_ids), concurrency):
            batch = unique_ids[start:start + concurrency]
            logger.info(f"Processing batch {start // concurrency + 1}/{total_batches}")

            resolved = await asyncio.gather(*(self._resolve_one(pid) for pid in batch))
            for package_id, name in zip(batch, resolved):
                results[package_id] = name

            if start + concurrency < len(unique_ids):
                await asyncio.sleep(pacing_delay)

        logger.info(f"Successfully retrieved {len(results)} app names")
        return results
