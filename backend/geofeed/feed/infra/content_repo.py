"""Primary content queries for the list, map and search consumption modes."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional
from uuid import UUID

import asyncpg

from geofeed.feed.domain import models
from geofeed.feed.domain.exceptions import ForbiddenError, NotFoundError, PrimaryQueryError
from geofeed.infra.postgres import connection
from geofeed.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_ITEM_SELECT = """
	SELECT p.id,
	       p.user_id,
	       p.content,
	       p.latitude,
	       p.longitude,
	       p.location_name,
	       p.created_at,
	       u.username,
	       u.display_name,
	       u.avatar_url,
	       COALESCE(
	         (SELECT json_agg(
	                   json_build_object('id', i.id, 'url', i.image_url, 'order', i.image_order)
	                   ORDER BY i.image_order, i.id)
	          FROM post_images i
	          WHERE i.post_id = p.id),
	         '[]'::json
	       ) AS images
	FROM posts p
	LEFT JOIN users u ON u.id = p.user_id
"""

_QUERY_ERRORS = (asyncpg.PostgresError, OSError, asyncio.TimeoutError)
_WRITABLE_COLUMNS = ("content", "location_name")


def _like_pattern(text: str) -> str:
	escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
	return f"%{escaped}%"


def _row_to_item(row: Any) -> models.ContentItem:
	images = row["images"]
	if isinstance(images, str):
		images = json.loads(images)
	author = None
	if row["username"] is not None or row["display_name"] is not None:
		author = models.Author(
			id=row["user_id"],
			username=row["username"],
			display_name=row["display_name"],
			avatar_url=row["avatar_url"],
		)
	return models.ContentItem(
		id=row["id"],
		author_id=row["user_id"],
		author=author,
		body=row["content"] or "",
		lat=float(row["latitude"]),
		lng=float(row["longitude"]),
		place_label=row["location_name"],
		created_at=row["created_at"],
		attachments=[models.Attachment(**image) for image in images or []],
	)


class ContentRepository:
	"""Thin data-access layer around asyncpg for content items."""

	async def _fetch(self, mode: str, sql: str, *args: object) -> list[Any]:
		try:
			async with connection() as conn:
				return await conn.fetch(sql, *args)
		except _QUERY_ERRORS as exc:
			obs_metrics.inc_primary_failure(mode)
			logger.error("feed.primary_query_failed", extra={"mode": mode}, exc_info=True)
			raise PrimaryQueryError() from exc

	async def list_page(
		self,
		*,
		offset: int,
		limit: int,
		author_id: UUID | None = None,
	) -> list[models.ContentItem]:
		if author_id is not None:
			rows = await self._fetch(
				"list",
				_ITEM_SELECT
				+ """
				WHERE p.user_id = $1
				ORDER BY p.created_at DESC, p.id DESC
				OFFSET $2 LIMIT $3
				""",
				author_id,
				offset,
				limit,
			)
		else:
			rows = await self._fetch(
				"list",
				_ITEM_SELECT
				+ """
				ORDER BY p.created_at DESC, p.id DESC
				OFFSET $1 LIMIT $2
				""",
				offset,
				limit,
			)
		return [_row_to_item(row) for row in rows]

	async def list_in_bounds(self, viewport: models.ViewportRequest, *, limit: int) -> list[models.ContentItem]:
		rows = await self._fetch(
			"map",
			_ITEM_SELECT
			+ """
			WHERE p.latitude BETWEEN $1 AND $2
			  AND p.longitude BETWEEN $3 AND $4
			ORDER BY p.created_at DESC, p.id DESC
			LIMIT $5
			""",
			viewport.south_west.lat,
			viewport.north_east.lat,
			viewport.south_west.lng,
			viewport.north_east.lng,
			limit,
		)
		return [_row_to_item(row) for row in rows]

	async def search(self, text: str, *, limit: int) -> list[models.ContentItem]:
		rows = await self._fetch(
			"search",
			_ITEM_SELECT
			+ """
			WHERE p.content ILIKE $1 OR p.location_name ILIKE $1
			ORDER BY p.created_at DESC, p.id DESC
			LIMIT $2
			""",
			_like_pattern(text),
			limit,
		)
		return [_row_to_item(row) for row in rows]

	async def search_places(self, text: str) -> list[models.PlaceMatch]:
		rows = await self._fetch(
			"search",
			"""
			SELECT location_name, COUNT(*) AS total
			FROM posts
			WHERE location_name IS NOT NULL AND location_name ILIKE $1
			GROUP BY location_name
			ORDER BY location_name
			""",
			_like_pattern(text),
		)
		return [models.PlaceMatch(place_label=row["location_name"], count=int(row["total"])) for row in rows]

	async def get(self, item_id: UUID) -> Optional[models.ContentItem]:
		rows = await self._fetch("item", _ITEM_SELECT + " WHERE p.id = $1", item_id)
		if not rows:
			return None
		return _row_to_item(rows[0])


	async def _lock_owned(self, conn: asyncpg.Connection, item_id: UUID, actor_id: UUID) -> None:
		owner = await conn.fetchval("SELECT user_id FROM posts WHERE id = $1 FOR UPDATE", item_id)
		if owner is None:
			raise NotFoundError("item_not_found")
		if owner != actor_id:
			raise ForbiddenError("not_item_author")

	async def update(self, item_id: UUID, actor_id: UUID, changes: Mapping[str, object]) -> models.ContentItem:
		"""Apply column ``changes`` to an item owned by ``actor_id``.

		Only ``content`` and ``location_name`` are writable.
		"""
		columns = [column for column in _WRITABLE_COLUMNS if column in changes]
		try:
			async with connection() as conn:
				async with conn.transaction():
					await self._lock_owned(conn, item_id, actor_id)
					if columns:
						assignments = ", ".join(f"{column} = ${index + 2}" for index, column in enumerate(columns))
						await conn.execute(
							f"UPDATE posts SET {assignments} WHERE id = $1",
							item_id,
							*(changes[column] for column in columns),
						)
					row = await conn.fetchrow(_ITEM_SELECT + " WHERE p.id = $1", item_id)
		except _QUERY_ERRORS as exc:
			obs_metrics.inc_primary_failure("write")
			logger.error("feed.primary_write_failed", extra={"op": "update"}, exc_info=True)
			raise PrimaryQueryError() from exc
		return _row_to_item(row)

	async def delete(self, item_id: UUID, actor_id: UUID) -> None:
		try:
			async with connection() as conn:
				async with conn.transaction():
					await self._lock_owned(conn, item_id, actor_id)
					await conn.execute("DELETE FROM posts WHERE id = $1", item_id)
		except _QUERY_ERRORS as exc:
			obs_metrics.inc_primary_failure("write")
			logger.error("feed.primary_write_failed", extra={"op": "delete"}, exc_info=True)
			raise PrimaryQueryError() from exc


__all__ = ["ContentRepository"]
