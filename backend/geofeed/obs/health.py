"""Liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Tuple

from geofeed.infra import postgres
from geofeed.infra.redis import redis_client
from geofeed.obs import metrics
from geofeed.settings import settings

LOGGER = logging.getLogger(__name__)

REDIS_TIMEOUT = 0.2
POSTGRES_TIMEOUT = 0.3


async def _probe(
	name: str,
	check: Callable[[], Awaitable[Any]],
	mark: Callable[..., None],
) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await check()
	except Exception as exc:  # pragma: no cover - depends on runtime
		mark(False)
		LOGGER.warning("health.probe_failed", extra={"dependency": name}, exc_info=True)
		return {"ok": False, "error": type(exc).__name__}
	latency = perf_counter() - start
	mark(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	"""Probe Postgres and Redis; report 503 if either fails."""
	postgres_state, redis_state = await asyncio.gather(
		_probe("postgres", lambda: postgres.ping(POSTGRES_TIMEOUT), metrics.mark_postgres),
		_probe(
			"redis",
			lambda: asyncio.wait_for(redis_client.ping(), timeout=REDIS_TIMEOUT),
			metrics.mark_redis,
		),
	)
	ok = bool(postgres_state["ok"] and redis_state["ok"])
	return (
		200 if ok else 503,
		{
			"status": "ok" if ok else "degraded",
			"service": settings.service_name,
			"commit": settings.git_commit,
			"checks": {"postgres": postgres_state, "redis": redis_state},
			"feed": {
				"count_store": settings.count_store_backend,
				"counts_cache": settings.counts_cache_backend,
			},
		},
	)
