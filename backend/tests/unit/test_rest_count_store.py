from __future__ import annotations

from uuid import uuid4

import httpx
import pytest

from geofeed.feed.domain.exceptions import FetchError
from geofeed.feed.infra.count_store import RestCountStore


def _store(handler) -> RestCountStore:
    client = httpx.AsyncClient(base_url="https://counts.test/rest/v1", transport=httpx.MockTransport(handler))
    return RestCountStore("https://counts.test/rest/v1", client=client)


@pytest.mark.asyncio
async def test_fetch_edges_sends_ids_inline():
    item, actor = uuid4(), uuid4()
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"post_id": str(item), "user_id": str(actor)}])

    store = _store(handler)
    edges = await store.fetch_edges([item])
    await store.aclose()

    assert sorted(edge.kind for edge in edges) == ["comment", "like"]
    assert all(edge.item_id == item and edge.actor_id == actor for edge in edges)
    assert sorted(request.url.path for request in seen) == ["/rest/v1/comments", "/rest/v1/likes"]
    assert all(request.url.params["post_id"] == f"in.({item})" for request in seen)


@pytest.mark.asyncio
async def test_fetch_edges_wraps_http_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"message": "down"})

    store = _store(handler)
    with pytest.raises(FetchError):
        await store.fetch_edges([uuid4()])
    await store.aclose()


@pytest.mark.asyncio
async def test_fetch_edges_without_ids_makes_no_request():
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("unexpected request")

    store = _store(handler)
    assert await store.fetch_edges([]) == []
    await store.aclose()
