from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from geofeed.feed.domain import aggregator, models
from geofeed.feed.domain.exceptions import ValidationError
from geofeed.feed.services.pagination import PaginationController


def _make_items(count: int) -> list[models.ContentItem]:
    base = datetime.now(timezone.utc)
    return [
        models.ContentItem(
            id=uuid4(),
            author_id=uuid4(),
            body=f"post {index}",
            lat=45.5,
            lng=-73.57,
            created_at=base - timedelta(minutes=index),
        )
        for index in range(count)
    ]


class _StubSource:
    def __init__(self, items: list[models.ContentItem]) -> None:
        self.items = items
        self.calls: list[tuple[int, int]] = []

    async def fetch_page(self, offset: int, limit: int) -> list[models.ContentItem]:
        self.calls.append((offset, limit))
        return self.items[offset : offset + limit]


async def _annotate(items):
    return aggregator.annotate(items, {})


@pytest.mark.asyncio
async def test_pages_until_short_page():
    source = _StubSource(_make_items(24))
    controller = PaginationController(source.fetch_page, _annotate, page_size=10)

    sizes = []
    while not controller.exhausted:
        sizes.append(len(await controller.load_next()))

    assert sizes == [10, 10, 4]
    assert source.calls == [(0, 10), (10, 10), (20, 10)]
    assert controller.page_index == 3


@pytest.mark.asyncio
async def test_exact_multiple_needs_one_empty_page():
    source = _StubSource(_make_items(20))
    controller = PaginationController(source.fetch_page, _annotate, page_size=10)

    sizes = []
    while not controller.exhausted:
        sizes.append(len(await controller.load_next()))

    assert sizes == [10, 10, 0]


@pytest.mark.asyncio
async def test_load_next_after_exhaustion_is_a_no_op():
    source = _StubSource(_make_items(3))
    controller = PaginationController(source.fetch_page, _annotate, page_size=10)
    await controller.load_next()
    assert controller.exhausted
    assert await controller.load_next() == []
    assert len(source.calls) == 1


def test_rejects_invalid_page_size():
    source = _StubSource([])
    with pytest.raises(ValidationError):
        PaginationController(source.fetch_page, _annotate, page_size=0)
