"""Redis-backed aggregate cache shared by every worker process."""

from __future__ import annotations

import json
import math
import time
from typing import Optional
from uuid import UUID

from geofeed.feed.domain.cache import Clock, viewer_key
from geofeed.feed.domain.models import CacheEntry, EngagementAggregate
from geofeed.infra.redis import redis_client

_COUNTS_KEY = "feed:counts:{item_id}"


def _counts_key(item_id: UUID) -> str:
    return _COUNTS_KEY.format(item_id=item_id)


class RedisAggregateCache:
    """Stores one hash per item with a field per viewer.

    The hash expires a TTL after the latest write; each field also carries its
    own ``computed_at`` so older fields in a refreshed hash still age out.
    """

    def __init__(self, ttl_seconds: float, *, clock: Clock = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    async def get(self, item_id: UUID, viewer_id: UUID | None = None) -> Optional[EngagementAggregate]:
        raw = await redis_client.hget(_counts_key(item_id), viewer_key(viewer_id))
        if not raw:
            return None
        data = json.loads(raw)
        entry = CacheEntry(
            aggregate=EngagementAggregate.from_dict(data),
            computed_at=float(data.get("computed_at", 0.0)),
        )
        if not entry.is_fresh(self._clock(), self.ttl_seconds):
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
        payload = dict(aggregate.to_dict(), computed_at=computed_at)
        key = _counts_key(item_id)
        pipe = redis_client.pipeline(transaction=True)
        pipe.hset(key, viewer_key(viewer_id), json.dumps(payload, separators=(",", ":")))
        pipe.expire(key, max(1, math.ceil(self.ttl_seconds)))
        await pipe.execute()

    async def invalidate(self, item_id: UUID) -> None:
        await redis_client.delete(_counts_key(item_id))


__all__ = ["RedisAggregateCache"]
