"""Count store clients that return raw engagement edges for a chunk of items."""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol, Sequence
from uuid import UUID

import httpx

from geofeed.feed.domain import models
from geofeed.feed.domain.exceptions import FetchError
from geofeed.settings import settings


class CountStore(Protocol):
    async def fetch_edges(self, item_ids: Sequence[UUID]) -> list[models.EngagementEdge]:
        ...


class RestCountStore:
    """PostgREST-style client.

    Identifiers travel inline in the query string (``post_id=in.(...)``), which
    is why chunks are sized against the request length limit.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)

    @classmethod
    def from_settings(cls) -> "RestCountStore":
        if not settings.count_store_rest_url:
            raise ValueError("COUNT_STORE_REST_URL is required for the rest count store")
        return cls(
            settings.count_store_rest_url,
            api_key=settings.count_store_rest_key,
            timeout=settings.count_store_timeout_seconds,
        )

    async def _fetch_table(self, table: str, kind: models.EngagementKind, in_filter: str) -> list[models.EngagementEdge]:
        response = await self._client.get(
            f"/{table}",
            params={"select": "post_id,user_id", "post_id": in_filter},
        )
        response.raise_for_status()
        return [
            models.EngagementEdge(item_id=row["post_id"], actor_id=row["user_id"], kind=kind)
            for row in response.json()
        ]

    async def fetch_edges(self, item_ids: Sequence[UUID]) -> list[models.EngagementEdge]:
        if not item_ids:
            return []
        in_filter = "in.(" + ",".join(str(item_id) for item_id in item_ids) + ")"
        try:
            likes, comments = await asyncio.gather(
                self._fetch_table("likes", "like", in_filter),
                self._fetch_table("comments", "comment", in_filter),
            )
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            raise FetchError() from exc
        return likes + comments

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["CountStore", "RestCountStore"]
