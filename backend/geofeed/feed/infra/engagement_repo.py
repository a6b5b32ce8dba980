"""Postgres engagement store: like/comment rows and the default count store client."""

from __future__ import annotations

import asyncio
from typing import Sequence
from uuid import UUID, uuid4

import asyncpg

from geofeed.feed.domain import models
from geofeed.feed.domain.exceptions import FetchError, ForbiddenError, NotFoundError
from geofeed.infra.postgres import connection

_FETCH_ERRORS = (asyncpg.PostgresError, OSError, asyncio.TimeoutError)


class EngagementRepository:
	"""Thin data-access layer around asyncpg for likes and comments."""

	async def fetch_edges(self, item_ids: Sequence[UUID]) -> list[models.EngagementEdge]:
		if not item_ids:
			return []
		try:
			async with connection() as conn:
				rows = await conn.fetch(
					"""
					SELECT post_id, user_id, 'like' AS kind
					FROM likes
					WHERE post_id = ANY($1::uuid[])
					UNION ALL
					SELECT post_id, user_id, 'comment' AS kind
					FROM comments
					WHERE post_id = ANY($1::uuid[])
					""",
					list(item_ids),
				)
		except _FETCH_ERRORS as exc:
			raise FetchError() from exc
		return [
			models.EngagementEdge(item_id=row["post_id"], actor_id=row["user_id"], kind=row["kind"])
			for row in rows
		]

	async def like(self, item_id: UUID, actor_id: UUID) -> bool:
		async with connection() as conn:
			try:
				status = await conn.execute(
					"""
					INSERT INTO likes (post_id, user_id)
					VALUES ($1, $2)
					ON CONFLICT (post_id, user_id) DO NOTHING
					""",
					item_id,
					actor_id,
				)
			except asyncpg.ForeignKeyViolationError as exc:
				raise NotFoundError("item_not_found") from exc
		return status.endswith(" 1")

	async def unlike(self, item_id: UUID, actor_id: UUID) -> bool:
		async with connection() as conn:
			status = await conn.execute(
				"DELETE FROM likes WHERE post_id = $1 AND user_id = $2",
				item_id,
				actor_id,
			)
		return status.endswith(" 1")

	async def add_comment(self, item_id: UUID, actor_id: UUID, body: str) -> models.Comment:
		async with connection() as conn:
			try:
				row = await conn.fetchrow(
					"""
					INSERT INTO comments (id, post_id, user_id, content)
					VALUES ($1, $2, $3, $4)
					RETURNING id, post_id, user_id, content, created_at
					""",
					uuid4(),
					item_id,
					actor_id,
					body,
				)
			except asyncpg.ForeignKeyViolationError as exc:
				raise NotFoundError("item_not_found") from exc
		return models.Comment(
			id=row["id"],
			item_id=row["post_id"],
			author_id=row["user_id"],
			body=row["content"],
			created_at=row["created_at"],
		)

	async def delete_comment(self, comment_id: UUID, actor_id: UUID) -> UUID:
		"""Delete a comment written by ``actor_id`` and return its item id."""
		async with connection() as conn:
			async with conn.transaction():
				row = await conn.fetchrow(
					"SELECT post_id, user_id FROM comments WHERE id = $1 FOR UPDATE",
					comment_id,
				)
				if row is None:
					raise NotFoundError("comment_not_found")
				if row["user_id"] != actor_id:
					raise ForbiddenError("not_comment_author")
				await conn.execute("DELETE FROM comments WHERE id = $1", comment_id)
		return row["post_id"]

	async def list_comments(self, item_id: UUID) -> list[models.Comment]:
		async with connection() as conn:
			rows = await conn.fetch(
				"""
				SELECT c.id, c.post_id, c.user_id, c.content, c.created_at,
				       u.username, u.display_name, u.avatar_url
				FROM comments c
				LEFT JOIN users u ON u.id = c.user_id
				WHERE c.post_id = $1
				ORDER BY c.created_at ASC, c.id ASC
				""",
				item_id,
			)
		return [
			models.Comment(
				id=row["id"],
				item_id=row["post_id"],
				author_id=row["user_id"],
				author=models.Author(
					id=row["user_id"],
					username=row["username"],
					display_name=row["display_name"],
					avatar_url=row["avatar_url"],
				),
				body=row["content"],
				created_at=row["created_at"],
			)
			for row in rows
		]


__all__ = ["EngagementRepository"]
