"""Feed engine: the annotate pipeline behind every consumption mode.

A mode supplies a list of content items; the engine plans identifier chunks,
fetches engagement edges in paced waves, reduces them per item and returns the
items annotated for the viewer. Bulk loads always recompute; only the
single-item refresh path reads the aggregate cache.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Hashable, Optional, Sequence
from uuid import UUID

from geofeed.feed.domain import aggregator, batching
from geofeed.feed.domain.cache import AggregateCache, TTLAggregateCache
from geofeed.feed.domain.exceptions import FetchError, NotFoundError, ValidationError
from geofeed.feed.domain.models import (
    AnnotatedContentItem,
    Comment,
    ContentItem,
    EngagementAggregate,
    PlaceMatch,
    ViewportRequest,
)
from geofeed.feed.infra.content_repo import ContentRepository
from geofeed.feed.infra.count_store import CountStore, RestCountStore
from geofeed.feed.infra.engagement_repo import EngagementRepository
from geofeed.feed.infra.redis_cache import RedisAggregateCache
from geofeed.feed.services.pagination import PaginationController
from geofeed.feed.services.scheduler import PacedFetchScheduler
from geofeed.feed.services.viewport import ViewportOutcome, ViewportRegistry
from geofeed.obs import metrics as obs_metrics
from geofeed.settings import settings

logger = logging.getLogger(__name__)

@dataclass(slots=True)
class FeedPage:
    items: list[AnnotatedContentItem]
    page: int
    next_page: Optional[int]
    exhausted: bool


@dataclass(slots=True)
class SearchResult:
    items: list[AnnotatedContentItem] = field(default_factory=list)
    places: list[PlaceMatch] = field(default_factory=list)


class FeedEngine:
    def __init__(
        self,
        *,
        content: ContentRepository,
        engagement: EngagementRepository,
        count_store: CountStore,
        cache: AggregateCache,
        scheduler: PacedFetchScheduler,
        constraints: batching.BatchConstraints,
        registry: ViewportRegistry,
        page_size: int = 10,
        max_page_size: int = 50,
        search_limit: int = 20,
        viewport_limit: int = 500,
        fallback_batch_size: int | None = None,
    ) -> None:
        self.content = content
        self.engagement = engagement
        self.count_store = count_store
        self.cache = cache
        self.scheduler = scheduler
        self.constraints = constraints
        self.registry = registry
        self.page_size = page_size
        self.max_page_size = max_page_size
        self.search_limit = search_limit
        self.viewport_limit = viewport_limit
        self.fallback_batch_size = fallback_batch_size

    async def annotate(
        self,
        items: Sequence[ContentItem],
        viewer_id: UUID | None = None,
        *,
        mode: str = "list",
    ) -> list[AnnotatedContentItem]:
        """Attach engagement counts to ``items`` in their original order.

        Chunks that fail to fetch are treated as empty, so affected items carry
        conservative counts rather than failing the whole load.
        """

        if not items:
            return []
        started = time.perf_counter()
        chunks = batching.plan_or_fallback(
            [item.id for item in items],
            self.constraints,
            fallback_size=self.fallback_batch_size,
        )
        edges = await self.scheduler.fetch(chunks, self.count_store.fetch_edges)
        aggregates = aggregator.aggregate(items, edges, viewer_id)
        annotated = aggregator.annotate(items, aggregates)
        obs_metrics.observe_annotate(mode, len(annotated), time.perf_counter() - started)
        return annotated

    # List mode

    def _page_size(self, page_size: int | None) -> int:
        size = self.page_size if page_size is None else page_size
        if size <= 0 or size > self.max_page_size:
            raise ValidationError("invalid_page_size")
        return size

    def make_pagination(
        self,
        viewer_id: UUID | None = None,
        *,
        page_size: int | None = None,
        page_index: int = 0,
        author_id: UUID | None = None,
    ) -> PaginationController:
        async def fetch_page(offset: int, limit: int) -> list[ContentItem]:
            return await self.content.list_page(offset=offset, limit=limit, author_id=author_id)

        async def annotate(items: Sequence[ContentItem]) -> list[AnnotatedContentItem]:
            return await self.annotate(items, viewer_id, mode="list")

        return PaginationController(
            fetch_page,
            annotate,
            page_size=self._page_size(page_size),
            page_index=page_index,
        )

    async def load_page(
        self,
        viewer_id: UUID | None = None,
        *,
        page: int = 0,
        page_size: int | None = None,
        author_id: UUID | None = None,
    ) -> FeedPage:
        controller = self.make_pagination(
            viewer_id,
            page_size=page_size,
            page_index=page,
            author_id=author_id,
        )
        items = await controller.load_next()
        return FeedPage(
            items=items,
            page=page,
            next_page=None if controller.exhausted else controller.page_index,
            exhausted=controller.exhausted,
        )

    # Map mode

    async def _load_bounds(self, viewport: ViewportRequest, viewer_id: UUID | None) -> list[AnnotatedContentItem]:
        items = await self.content.list_in_bounds(viewport, limit=self.viewport_limit)
        return await self.annotate(items, viewer_id, mode="map")

    async def load_viewport(
        self,
        viewport: ViewportRequest,
        viewer_id: UUID | None = None,
        *,
        view_id: str | None = None,
    ) -> ViewportOutcome:
        """Load a viewport, debounced per map view when ``view_id`` is given.

        Map views are scoped to an identified viewer. Anonymous clients cannot
        be told apart, so their requests are always served directly.
        """

        if view_id is None or viewer_id is None:
            items = await self._load_bounds(viewport, viewer_id)
            return ViewportOutcome("applied", 0, items)

        async def loader(request: ViewportRequest) -> list[AnnotatedContentItem]:
            return await self._load_bounds(request, viewer_id)

        view_key: Hashable = (str(viewer_id), view_id)
        coordinator = self.registry.get_or_create(view_key, loader)
        return await coordinator.viewport_changed(viewport)

    # Search mode

    async def search(self, text: str, viewer_id: UUID | None = None) -> list[AnnotatedContentItem]:
        query = text.strip()
        if not query:
            return []
        items = await self.content.search(query, limit=self.search_limit)
        return await self.annotate(items, viewer_id, mode="search")

    async def search_places(self, text: str) -> list[PlaceMatch]:
        query = text.strip()
        if not query:
            return []
        return await self.content.search_places(query)

    async def search_all(self, text: str, viewer_id: UUID | None = None) -> SearchResult:
        return SearchResult(
            items=await self.search(text, viewer_id),
            places=await self.search_places(text),
        )

    # Single item

    async def refresh_counts(self, item_id: UUID, viewer_id: UUID | None = None) -> EngagementAggregate:
        cached = await self.cache.get(item_id, viewer_id)
        obs_metrics.inc_cache_lookup(cached is not None)
        if cached is not None:
            return cached
        try:
            edges = await self.count_store.fetch_edges([item_id])
        except FetchError:
            obs_metrics.inc_chunk_fetch("failed")
            logger.warning("feed.refresh_fetch_failed", extra={"item_id": str(item_id)}, exc_info=True)
            return EngagementAggregate()
        result = aggregator.aggregate_ids([item_id], edges, viewer_id)[item_id]
        await self.cache.put(item_id, result, viewer_id)
        return result

    async def item_counts(self, item_id: UUID, viewer_id: UUID | None = None) -> EngagementAggregate:
        if await self.content.get(item_id) is None:
            raise NotFoundError("item_not_found")
        return await self.refresh_counts(item_id, viewer_id)

    async def list_comments(self, item_id: UUID) -> list[Comment]:
        if await self.content.get(item_id) is None:
            raise NotFoundError("item_not_found")
        return await self.engagement.list_comments(item_id)

    # Writes

    async def _after_write(self, item_id: UUID, viewer_id: UUID) -> EngagementAggregate:
        await self.cache.invalidate(item_id)
        return await self.refresh_counts(item_id, viewer_id)

    async def like(self, item_id: UUID, viewer_id: UUID) -> EngagementAggregate:
        created = await self.engagement.like(item_id, viewer_id)
        obs_metrics.inc_engagement_write("like", "add" if created else "noop")
        return await self._after_write(item_id, viewer_id)

    async def unlike(self, item_id: UUID, viewer_id: UUID) -> EngagementAggregate:
        removed = await self.engagement.unlike(item_id, viewer_id)
        obs_metrics.inc_engagement_write("like", "remove" if removed else "noop")
        return await self._after_write(item_id, viewer_id)

    async def add_comment(self, item_id: UUID, viewer_id: UUID, body: str) -> tuple[Comment, EngagementAggregate]:
        text = body.strip()
        if not text:
            raise ValidationError("empty_comment")
        comment = await self.engagement.add_comment(item_id, viewer_id, text)
        obs_metrics.inc_engagement_write("comment", "add")
        return comment, await self._after_write(item_id, viewer_id)

    async def delete_comment(self, comment_id: UUID, viewer_id: UUID) -> EngagementAggregate:
        item_id = await self.engagement.delete_comment(comment_id, viewer_id)
        obs_metrics.inc_engagement_write("comment", "remove")
        return await self._after_write(item_id, viewer_id)

    # Author-only post management

    async def update_item(
        self,
        item_id: UUID,
        viewer_id: UUID,
        *,
        body: str | None = None,
        place_label: str | None = None,
    ) -> AnnotatedContentItem:
        """Edit an item's body or place label. An empty place label clears it."""

        changes: dict[str, object] = {}
        if body is not None:
            text = body.strip()
            if not text:
                raise ValidationError("empty_body")
            changes["content"] = text
        if place_label is not None:
            changes["location_name"] = place_label.strip() or None
        if not changes:
            raise ValidationError("no_changes")
        item = await self.content.update(item_id, viewer_id, changes)
        obs_metrics.inc_engagement_write("post", "edit")
        annotated = await self.annotate([item], viewer_id, mode="item")
        return annotated[0]

    async def delete_item(self, item_id: UUID, viewer_id: UUID) -> None:
        await self.content.delete(item_id, viewer_id)
        await self.cache.invalidate(item_id)
        obs_metrics.inc_engagement_write("post", "remove")

    async def close(self) -> None:
        await self.registry.close()
        aclose = getattr(self.count_store, "aclose", None)
        if callable(aclose):
            await aclose()


def _build_cache() -> AggregateCache:
    if settings.counts_cache_backend == "redis":
        return RedisAggregateCache(settings.counts_cache_ttl_seconds)
    return TTLAggregateCache(settings.counts_cache_ttl_seconds)


def build_engine() -> FeedEngine:
    engagement = EngagementRepository()
    count_store: CountStore = engagement
    if settings.count_store_backend == "rest":
        count_store = RestCountStore.from_settings()
    return FeedEngine(
        content=ContentRepository(),
        engagement=engagement,
        count_store=count_store,
        cache=_build_cache(),
        scheduler=PacedFetchScheduler.from_settings(),
        constraints=batching.BatchConstraints.from_settings(),
        registry=ViewportRegistry(
            debounce_seconds=settings.viewport_debounce_ms / 1000.0,
            max_views=settings.viewport_max_views,
        ),
        page_size=settings.feed_page_size,
        max_page_size=settings.feed_max_page_size,
        search_limit=settings.feed_search_limit,
        viewport_limit=settings.feed_viewport_limit,
        fallback_batch_size=settings.feed_fallback_batch_size,
    )


__all__ = ["FeedEngine", "FeedPage", "SearchResult", "build_engine"]
