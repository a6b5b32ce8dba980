"""Redis client used by the shared aggregate cache and readiness probe.

Modules import the ``redis_client`` proxy once; the client behind it is built
from ``settings.redis_url`` on first use and can be replaced (fakeredis in
tests) without touching those imports.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis

from geofeed.settings import settings


class RedisProxy:
	"""Forwards attribute access to the current Redis client."""

	def __init__(self, url: str) -> None:
		self._url = url
		self._client: Optional[redis.Redis] = None

	@property
	def client(self) -> redis.Redis:
		if self._client is None:
			self._client = redis.from_url(self._url, decode_responses=True)
		return self._client

	def set_client(self, client: Optional[redis.Redis]) -> None:
		self._client = client

	async def aclose(self) -> None:
		if self._client is not None:
			client, self._client = self._client, None
			await client.aclose()

	def __getattr__(self, item):
		return getattr(self.client, item)


redis_client: RedisProxy = RedisProxy(settings.redis_url)


def set_redis_client(client: Optional[redis.Redis]) -> None:
	redis_client.set_client(client)
