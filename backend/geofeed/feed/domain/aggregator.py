"""Reduce raw engagement edges into per-item aggregates."""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Mapping, Sequence
from uuid import UUID

from geofeed.feed.domain.models import AnnotatedContentItem, ContentItem, EngagementAggregate, EngagementEdge


def aggregate_ids(
    item_ids: Iterable[UUID],
    edges: Iterable[EngagementEdge],
    viewer_id: UUID | None = None,
) -> dict[UUID, EngagementAggregate]:
    """Count likes and comments per item and flag the items the viewer liked.

    Edges pointing at items outside ``item_ids`` are ignored; items without any
    edge get an all-zero aggregate.
    """

    wanted = list(dict.fromkeys(item_ids))
    lookup = set(wanted)
    likes: Counter[UUID] = Counter()
    comments: Counter[UUID] = Counter()
    liked: set[UUID] = set()
    for edge in edges:
        if edge.item_id not in lookup:
            continue
        if edge.kind == "like":
            likes[edge.item_id] += 1
            if viewer_id is not None and edge.actor_id == viewer_id:
                liked.add(edge.item_id)
        elif edge.kind == "comment":
            comments[edge.item_id] += 1
    return {
        item_id: EngagementAggregate(
            like_count=likes[item_id],
            comment_count=comments[item_id],
            liked_by_viewer=item_id in liked,
        )
        for item_id in wanted
    }


def aggregate(
    items: Sequence[ContentItem],
    edges: Iterable[EngagementEdge],
    viewer_id: UUID | None = None,
) -> dict[UUID, EngagementAggregate]:
    return aggregate_ids((item.id for item in items), edges, viewer_id)


def annotate(
    items: Sequence[ContentItem],
    aggregates: Mapping[UUID, EngagementAggregate],
) -> list[AnnotatedContentItem]:
    """Attach aggregates to items, preserving the caller's ordering."""

    empty = EngagementAggregate()
    return [item.annotate(aggregates.get(item.id, empty)) for item in items]


__all__ = ["aggregate", "aggregate_ids", "annotate"]
