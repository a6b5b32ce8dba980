"""Paced, wave-based fetching of engagement chunks.

Chunks are dispatched in waves of at most ``concurrency`` concurrent fetches.
A wave starts only after every fetch of the previous wave has settled and the
inter-wave delay has elapsed, which bounds the load placed on the count store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from geofeed.feed.domain.exceptions import ConfigurationError, FetchError
from geofeed.feed.domain.models import EngagementEdge
from geofeed.obs import metrics as obs_metrics
from geofeed.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

ChunkFetcher = Callable[[Sequence[T]], Awaitable[Sequence[EngagementEdge]]]
Sleep = Callable[[float], Awaitable[None]]


def waves(chunks: Sequence[T], size: int) -> list[Sequence[T]]:
    return [chunks[start : start + size] for start in range(0, len(chunks), size)]


class PacedFetchScheduler:
    def __init__(
        self,
        *,
        concurrency: int,
        inter_wave_delay: float,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if concurrency <= 0:
            raise ConfigurationError("non_positive_concurrency")
        self.concurrency = concurrency
        self.inter_wave_delay = max(0.0, inter_wave_delay)
        self._sleep = sleep

    @classmethod
    def from_settings(cls) -> "PacedFetchScheduler":
        return cls(
            concurrency=settings.feed_fetch_concurrency,
            inter_wave_delay=settings.feed_wave_delay_ms / 1000.0,
        )

    async def fetch(self, chunks: Sequence[Sequence[T]], fetcher: ChunkFetcher) -> list[EngagementEdge]:
        """Fetch every chunk and flatten the edges; failed chunks count as empty."""

        edges: list[EngagementEdge] = []
        for index, wave in enumerate(waves(chunks, self.concurrency)):
            if index and self.inter_wave_delay:
                await self._sleep(self.inter_wave_delay)
            obs_metrics.inc_wave()
            results = await asyncio.gather(*(self._fetch_chunk(fetcher, chunk) for chunk in wave))
            for chunk_edges in results:
                edges.extend(chunk_edges)
        return edges

    async def _fetch_chunk(self, fetcher: ChunkFetcher, chunk: Sequence[T]) -> Sequence[EngagementEdge]:
        try:
            result = await fetcher(chunk)
        except FetchError:
            obs_metrics.inc_chunk_fetch("failed")
            logger.warning("feed.chunk_fetch_failed", extra={"chunk_size": len(chunk)}, exc_info=True)
            return []
        obs_metrics.inc_chunk_fetch("ok")
        return result


__all__ = ["PacedFetchScheduler", "waves"]
