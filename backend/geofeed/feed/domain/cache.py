"""Short-lived cache of per-item engagement aggregates.

Only the single-item refresh path reads from here; bulk feed loads always
recompute. Entries are keyed by item and viewer because ``liked_by_viewer``
differs per viewer, and ``invalidate`` drops every viewer's entry for an item.
Expiry is lazy: stale entries are ignored (and dropped) on read.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Protocol
from uuid import UUID

from geofeed.feed.domain.models import CacheEntry, EngagementAggregate

ANONYMOUS = "anon"

Clock = Callable[[], float]


def viewer_key(viewer_id: UUID | None) -> str:
    return str(viewer_id) if viewer_id is not None else ANONYMOUS


class AggregateCache(Protocol):
    async def get(self, item_id: UUID, viewer_id: UUID | None = None) -> Optional[EngagementAggregate]:
        ...

    async def put(
        self,
        item_id: UUID,
        aggregate: EngagementAggregate,
        viewer_id: UUID | None = None,
        *,
        now: float | None = None,
    ) -> None:
        ...

    async def invalidate(self, item_id: UUID) -> None:
        ...


class TTLAggregateCache:
    """In-process cache for a single event loop.

    All access happens from one cooperative scheduling context, so no locking
    is needed. Deployments running several workers use the Redis-backed cache.
    """

    def __init__(self, ttl_seconds: float, *, clock: Clock = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[UUID, Dict[str, CacheEntry]] = {}

    async def get(self, item_id: UUID, viewer_id: UUID | None = None) -> Optional[EngagementAggregate]:
        per_viewer = self._entries.get(item_id)
        if not per_viewer:
            return None
        key = viewer_key(viewer_id)
        entry = per_viewer.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock(), self.ttl_seconds):
            del per_viewer[key]
            if not per_viewer:
                del self._entries[item_id]
            return None
        return entry.aggregate

    async def put(
        self,
        item_id: UUID,
        aggregate: EngagementAggregate,
        viewer_id: UUID | None = None,
        *,
        now: float | None = None,
    ) -> None:
        computed_at = self._clock() if now is None else now
        self._entries.setdefault(item_id, {})[viewer_key(viewer_id)] = CacheEntry(
            aggregate=aggregate,
            computed_at=computed_at,
        )

    async def invalidate(self, item_id: UUID) -> None:
        self._entries.pop(item_id, None)

    def __len__(self) -> int:
        return sum(len(per_viewer) for per_viewer in self._entries.values())


__all__ = ["AggregateCache", "TTLAggregateCache", "viewer_key", "ANONYMOUS"]
