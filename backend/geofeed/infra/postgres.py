"""AsyncPG pool shared by the content and engagement stores."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from geofeed.settings import settings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.pool.Pool] = None


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		# Force 127.0.0.1 instead of localhost to avoid IPv6 resolution surprises
		dsn = settings.postgres_url.replace("localhost", "127.0.0.1")
		_pool = await asyncpg.create_pool(
			dsn=dsn,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			ssl="require" if settings.postgres_ssl else "disable",
			server_settings={"application_name": settings.service_name},
		)
		logger.info(
			"postgres.pool_created",
			extra={"min_size": settings.postgres_min_pool_size, "max_size": settings.postgres_max_pool_size},
		)
	return _pool


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is None:
		return await init_pool()
	return _pool


@asynccontextmanager
async def connection() -> AsyncIterator[asyncpg.Connection]:
	"""Borrow one pooled connection for the duration of the block."""
	pool = await get_pool()
	async with pool.acquire() as conn:
		yield conn


async def ping(timeout: float) -> None:
	async with connection() as conn:
		await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		pool, _pool = _pool, None
		await pool.close()
		logger.info("postgres.pool_closed")
