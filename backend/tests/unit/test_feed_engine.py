from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from geofeed.feed.domain import models
from geofeed.feed.domain.batching import BatchConstraints
from geofeed.feed.domain.cache import TTLAggregateCache
from geofeed.feed.domain.exceptions import (
    FetchError,
    ForbiddenError,
    NotFoundError,
    PrimaryQueryError,
    ValidationError,
)
from geofeed.feed.services.engine import FeedEngine
from geofeed.feed.services.scheduler import PacedFetchScheduler
from geofeed.feed.services.viewport import ViewportRegistry


def _make_items(count: int) -> list[models.ContentItem]:
    base = datetime.now(timezone.utc)
    return [
        models.ContentItem(
            id=uuid4(),
            author_id=uuid4(),
            body=f"post {index}",
            lat=45.5,
            lng=-73.57,
            place_label="Old Port" if index % 2 else None,
            created_at=base - timedelta(minutes=index),
        )
        for index in range(count)
    ]


class _StubContent:
    def __init__(self, items: list[models.ContentItem], *, fail: bool = False) -> None:
        self.items = items
        self.fail = fail

    async def list_page(self, *, offset: int, limit: int, author_id: UUID | None = None):
        if self.fail:
            raise PrimaryQueryError()
        rows = [item for item in self.items if author_id is None or item.author_id == author_id]
        return rows[offset : offset + limit]

    async def list_in_bounds(self, viewport: models.ViewportRequest, *, limit: int):
        return [item for item in self.items if viewport.contains(item.coordinate)][:limit]

    async def search(self, text: str, *, limit: int):
        needle = text.lower()
        return [item for item in self.items if needle in item.body.lower()][:limit]

    async def search_places(self, text: str):
        return [models.PlaceMatch(place_label="Old Port", count=1)] if "port" in text.lower() else []

    async def get(self, item_id: UUID):
        return next((item for item in self.items if item.id == item_id), None)

    def _owned(self, item_id: UUID, actor_id: UUID) -> models.ContentItem:
        item = next((item for item in self.items if item.id == item_id), None)
        if item is None:
            raise NotFoundError("item_not_found")
        if item.author_id != actor_id:
            raise ForbiddenError("not_item_author")
        return item

    async def update(self, item_id: UUID, actor_id: UUID, changes):
        item = self._owned(item_id, actor_id)
        fields = {"content": "body", "location_name": "place_label"}
        updated = item.model_copy(update={fields[column]: value for column, value in changes.items()})
        self.items[self.items.index(item)] = updated
        return updated

    async def delete(self, item_id: UUID, actor_id: UUID) -> None:
        self.items.remove(self._owned(item_id, actor_id))


class _StubStore:
    """Count store and engagement store backed by an in-memory edge list."""

    def __init__(self) -> None:
        self.edges: list[models.EngagementEdge] = []
        self.requests: list[list[UUID]] = []
        self.fail_chunks: set[int] = set()
        self.fail_all = False

    async def fetch_edges(self, item_ids):
        index = len(self.requests)
        self.requests.append(list(item_ids))
        if self.fail_all or index in self.fail_chunks:
            raise FetchError()
        wanted = set(item_ids)
        return [edge for edge in self.edges if edge.item_id in wanted]

    async def like(self, item_id: UUID, actor_id: UUID) -> bool:
        if any(e.item_id == item_id and e.actor_id == actor_id and e.kind == "like" for e in self.edges):
            return False
        self.edges.append(models.EngagementEdge(item_id=item_id, actor_id=actor_id, kind="like"))
        return True

    async def unlike(self, item_id: UUID, actor_id: UUID) -> bool:
        before = len(self.edges)
        self.edges = [
            e for e in self.edges if not (e.item_id == item_id and e.actor_id == actor_id and e.kind == "like")
        ]
        return len(self.edges) < before

    async def add_comment(self, item_id: UUID, actor_id: UUID, body: str) -> models.Comment:
        self.edges.append(models.EngagementEdge(item_id=item_id, actor_id=actor_id, kind="comment", body=body))
        return models.Comment(
            id=uuid4(),
            item_id=item_id,
            author_id=actor_id,
            body=body,
            created_at=datetime.now(timezone.utc),
        )

    async def delete_comment(self, comment_id: UUID, actor_id: UUID) -> UUID:
        for edge in self.edges:
            if edge.kind == "comment":
                self.edges.remove(edge)
                return edge.item_id
        raise NotFoundError("comment_not_found")

    async def list_comments(self, item_id: UUID):
        return []


async def _no_sleep(_: float) -> None:
    return None


def _engine(items, store=None, **overrides) -> tuple[FeedEngine, _StubStore]:
    store = store or _StubStore()
    values = dict(
        content=_StubContent(items),
        engagement=store,
        count_store=store,
        cache=TTLAggregateCache(30),
        scheduler=PacedFetchScheduler(concurrency=3, inter_wave_delay=0.1, sleep=_no_sleep),
        constraints=BatchConstraints(max_batch_size=4, max_request_length=8000, estimated_id_length=36),
        registry=ViewportRegistry(debounce_seconds=0.01, max_views=10),
        page_size=10,
        max_page_size=50,
    )
    values.update(overrides)
    return FeedEngine(**values), store


@pytest.mark.asyncio
async def test_annotate_chunks_and_preserves_order():
    items = _make_items(10)
    viewer = uuid4()
    engine, store = _engine(items)
    store.edges = [
        models.EngagementEdge(item_id=items[0].id, actor_id=viewer, kind="like"),
        models.EngagementEdge(item_id=items[9].id, actor_id=uuid4(), kind="comment"),
    ]

    annotated = await engine.annotate(items, viewer)

    assert [item.id for item in annotated] == [item.id for item in items]
    assert [len(chunk) for chunk in store.requests] == [4, 4, 2]
    assert annotated[0].liked_by_viewer is True
    assert annotated[9].comment_count == 1


@pytest.mark.asyncio
async def test_annotate_degrades_when_a_chunk_fails():
    items = _make_items(8)
    engine, store = _engine(items)
    store.edges = [models.EngagementEdge(item_id=item.id, actor_id=uuid4(), kind="like") for item in items]
    store.fail_chunks = {1}

    annotated = await engine.annotate(items)

    assert [item.like_count for item in annotated] == [1, 1, 1, 1, 0, 0, 0, 0]
    assert [item.body for item in annotated] == [item.body for item in items]


@pytest.mark.asyncio
async def test_annotate_empty_issues_no_requests():
    engine, store = _engine([])
    assert await engine.annotate([]) == []
    assert store.requests == []


@pytest.mark.asyncio
async def test_load_page_reports_exhaustion():
    engine, _ = _engine(_make_items(24))

    first = await engine.load_page(page=0)
    last = await engine.load_page(page=2)

    assert len(first.items) == 10
    assert first.next_page == 1
    assert first.exhausted is False
    assert len(last.items) == 4
    assert last.next_page is None
    assert last.exhausted is True


@pytest.mark.asyncio
async def test_load_page_filters_by_author():
    items = _make_items(5)
    engine, _ = _engine(items)
    page = await engine.load_page(author_id=items[2].author_id)
    assert [item.id for item in page.items] == [items[2].id]


@pytest.mark.asyncio
async def test_load_page_rejects_oversized_pages():
    engine, _ = _engine(_make_items(1))
    with pytest.raises(ValidationError):
        await engine.load_page(page_size=51)


@pytest.mark.asyncio
async def test_primary_query_failure_propagates():
    engine, _ = _engine([], content=_StubContent([], fail=True))
    with pytest.raises(PrimaryQueryError):
        await engine.load_page()


@pytest.mark.asyncio
async def test_refresh_counts_is_cache_first():
    items = _make_items(1)
    engine, store = _engine(items)
    store.edges = [models.EngagementEdge(item_id=items[0].id, actor_id=uuid4(), kind="like")]

    first = await engine.refresh_counts(items[0].id)
    store.edges = []
    second = await engine.refresh_counts(items[0].id)

    assert first.like_count == 1
    assert second == first
    assert len(store.requests) == 1


@pytest.mark.asyncio
async def test_refresh_counts_failure_returns_zero_without_caching():
    items = _make_items(1)
    engine, store = _engine(items)
    store.fail_all = True

    assert (await engine.refresh_counts(items[0].id)).like_count == 0
    store.fail_all = False
    store.edges = [models.EngagementEdge(item_id=items[0].id, actor_id=uuid4(), kind="like")]
    assert (await engine.refresh_counts(items[0].id)).like_count == 1


@pytest.mark.asyncio
async def test_writes_invalidate_cached_counts():
    items = _make_items(1)
    viewer = uuid4()
    engine, _ = _engine(items)
    item_id = items[0].id

    assert (await engine.refresh_counts(item_id, viewer)).like_count == 0
    liked = await engine.like(item_id, viewer)
    assert liked.like_count == 1
    assert liked.liked_by_viewer is True
    assert (await engine.like(item_id, viewer)).like_count == 1

    comment, counts = await engine.add_comment(item_id, viewer, "  nice  ")
    assert comment.body == "nice"
    assert counts.comment_count == 1

    counts = await engine.delete_comment(comment.id, viewer)
    assert counts.comment_count == 0
    unliked = await engine.unlike(item_id, viewer)
    assert unliked == models.EngagementAggregate()


@pytest.mark.asyncio
async def test_add_comment_rejects_blank_body():
    items = _make_items(1)
    engine, _ = _engine(items)
    with pytest.raises(ValidationError):
        await engine.add_comment(items[0].id, uuid4(), "   ")


@pytest.mark.asyncio
async def test_item_counts_unknown_item():
    engine, _ = _engine([])
    with pytest.raises(NotFoundError):
        await engine.item_counts(uuid4())


@pytest.mark.asyncio
async def test_search_annotates_matches_and_places():
    items = _make_items(3)
    engine, _ = _engine(items)

    result = await engine.search_all("POST 1")
    assert [item.id for item in result.items] == [items[1].id]
    assert (await engine.search_all("port")).places[0].place_label == "Old Port"
    assert (await engine.search_all("   ")).items == []


@pytest.mark.asyncio
async def test_load_viewport_direct_and_debounced():
    items = _make_items(2)
    engine, store = _engine(items)
    box = models.ViewportRequest.from_bounds(ne_lat=46, ne_lng=-73, sw_lat=45, sw_lng=-74)

    direct = await engine.load_viewport(box)
    assert direct.status == "applied"
    assert len(direct.items) == 2

    viewer = uuid4()
    first = await engine.load_viewport(box, viewer, view_id="map-1")
    second = await engine.load_viewport(box, viewer, view_id="map-1")
    assert first.status == "applied"
    assert second.status == "duplicate"
    assert len(engine.registry) == 1
    await engine.close()


@pytest.mark.asyncio
async def test_anonymous_viewers_never_share_a_map_view():
    items = _make_items(2)
    engine, _ = _engine(items)
    near = models.ViewportRequest.from_bounds(ne_lat=46, ne_lng=-73, sw_lat=45, sw_lng=-74)
    far = models.ViewportRequest.from_bounds(ne_lat=11, ne_lng=11, sw_lat=10, sw_lng=10)

    first, second = await asyncio.gather(
        engine.load_viewport(near, view_id="map"),
        engine.load_viewport(far, view_id="map"),
    )

    assert first.status == "applied"
    assert second.status == "applied"
    assert len(first.items) == 2
    assert second.items == []
    assert len(engine.registry) == 0
    await engine.close()


@pytest.mark.asyncio
async def test_identified_viewers_get_separate_map_views():
    items = _make_items(2)
    engine, _ = _engine(items)
    near = models.ViewportRequest.from_bounds(ne_lat=46, ne_lng=-73, sw_lat=45, sw_lng=-74)
    far = models.ViewportRequest.from_bounds(ne_lat=11, ne_lng=11, sw_lat=10, sw_lng=10)

    first, second = await asyncio.gather(
        engine.load_viewport(near, uuid4(), view_id="map"),
        engine.load_viewport(far, uuid4(), view_id="map"),
    )

    assert first.status == second.status == "applied"
    assert len(first.items) == 2
    assert second.items == []
    assert len(engine.registry) == 2
    await engine.close()


@pytest.mark.asyncio
async def test_author_edits_item_and_gets_annotated_copy():
    items = _make_items(1)
    author = items[0].author_id
    engine, store = _engine(items)
    store.edges = [models.EngagementEdge(item_id=items[0].id, actor_id=author, kind="like")]

    edited = await engine.update_item(items[0].id, author, body="  updated  ", place_label="Mile End")
    assert edited.body == "updated"
    assert edited.place_label == "Mile End"
    assert edited.like_count == 1
    assert edited.liked_by_viewer is True

    cleared = await engine.update_item(items[0].id, author, place_label="  ")
    assert cleared.place_label is None
    assert cleared.body == "updated"


@pytest.mark.asyncio
async def test_update_item_rejects_foreign_and_empty_edits():
    items = _make_items(1)
    engine, _ = _engine(items)
    with pytest.raises(ForbiddenError):
        await engine.update_item(items[0].id, uuid4(), body="hijack")
    with pytest.raises(ValidationError):
        await engine.update_item(items[0].id, items[0].author_id, body="   ")
    with pytest.raises(ValidationError):
        await engine.update_item(items[0].id, items[0].author_id)
    with pytest.raises(NotFoundError):
        await engine.update_item(uuid4(), items[0].author_id, body="missing")


@pytest.mark.asyncio
async def test_delete_item_is_author_only_and_invalidates_counts():
    items = _make_items(1)
    item_id, author = items[0].id, items[0].author_id
    engine, store = _engine(items)
    store.edges = [models.EngagementEdge(item_id=item_id, actor_id=uuid4(), kind="like")]
    assert (await engine.refresh_counts(item_id)).like_count == 1

    with pytest.raises(ForbiddenError):
        await engine.delete_item(item_id, uuid4())
    assert await engine.cache.get(item_id) is not None

    await engine.delete_item(item_id, author)
    assert await engine.cache.get(item_id) is None
    with pytest.raises(NotFoundError):
        await engine.item_counts(item_id)
