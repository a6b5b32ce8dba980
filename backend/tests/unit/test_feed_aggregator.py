from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from geofeed.feed.domain import aggregator, models


def _make_item(**overrides) -> models.ContentItem:
    author = uuid4()
    values = dict(
        id=uuid4(),
        author_id=author,
        body="Body",
        lat=45.5,
        lng=-73.57,
        created_at=datetime.now(timezone.utc),
    )
    values.update(overrides)
    return models.ContentItem(**values)


def _edge(item, actor, kind) -> models.EngagementEdge:
    return models.EngagementEdge(item_id=item.id, actor_id=actor, kind=kind)


def test_aggregate_counts_each_kind():
    item = _make_item()
    edges = [_edge(item, uuid4(), "like") for _ in range(3)] + [_edge(item, uuid4(), "comment") for _ in range(2)]
    result = aggregator.aggregate([item], edges)
    assert result[item.id] == models.EngagementAggregate(like_count=3, comment_count=2, liked_by_viewer=False)


def test_annotate_end_to_end_for_viewer():
    viewer1, viewer2 = uuid4(), uuid4()
    a, b, c = _make_item(), _make_item(), _make_item()
    edges = [
        _edge(a, viewer1, "like"),
        _edge(a, viewer2, "like"),
        _edge(a, viewer1, "comment"),
        _edge(b, viewer2, "like"),
    ]
    annotated = aggregator.annotate([a, b, c], aggregator.aggregate([a, b, c], edges, viewer1))

    assert [item.id for item in annotated] == [a.id, b.id, c.id]
    assert (annotated[0].like_count, annotated[0].comment_count, annotated[0].liked_by_viewer) == (2, 1, True)
    assert (annotated[1].like_count, annotated[1].comment_count, annotated[1].liked_by_viewer) == (1, 0, False)
    assert (annotated[2].like_count, annotated[2].comment_count, annotated[2].liked_by_viewer) == (0, 0, False)


def test_comment_by_viewer_does_not_mark_liked():
    viewer = uuid4()
    item = _make_item()
    result = aggregator.aggregate([item], [_edge(item, viewer, "comment")], viewer)
    assert result[item.id].liked_by_viewer is False


def test_anonymous_viewer_never_likes():
    item = _make_item()
    result = aggregator.aggregate([item], [_edge(item, uuid4(), "like")], None)
    assert result[item.id].like_count == 1
    assert result[item.id].liked_by_viewer is False


def test_edges_for_unknown_items_are_ignored():
    item = _make_item()
    stray = models.EngagementEdge(item_id=uuid4(), actor_id=uuid4(), kind="like")
    result = aggregator.aggregate([item], [stray])
    assert list(result) == [item.id]
    assert result[item.id] == models.EngagementAggregate()


def test_annotate_keeps_item_data():
    item = _make_item(body="Hello", place_label="Old Port")
    annotated = aggregator.annotate([item], {})
    assert annotated[0].body == "Hello"
    assert annotated[0].place_label == "Old Port"
    assert annotated[0].like_count == 0
