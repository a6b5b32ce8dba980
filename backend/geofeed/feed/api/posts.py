"""List mode, post management, counts, likes and comment routes."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from geofeed.feed.api._errors import to_http_error
from geofeed.feed.api.deps import get_engine
from geofeed.feed.domain.exceptions import FeedError
from geofeed.feed.domain.models import AnnotatedContentItem
from geofeed.feed.schemas import dto
from geofeed.feed.services.engine import FeedEngine
from geofeed.infra.auth import Viewer, get_current_viewer, get_optional_viewer

router = APIRouter(tags=["feed:posts"])


def _viewer_id(viewer: Optional[Viewer]) -> Optional[UUID]:
	return viewer.id if viewer is not None else None


@router.get("/posts", response_model=dto.FeedPageResponse)
async def list_posts_endpoint(
	page: int = Query(default=0, ge=0),
	page_size: Optional[int] = Query(default=None, ge=1),
	author_id: Optional[UUID] = Query(default=None),
	viewer: Optional[Viewer] = Depends(get_optional_viewer),
	engine: FeedEngine = Depends(get_engine),
) -> dto.FeedPageResponse:
	try:
		result = await engine.load_page(
			_viewer_id(viewer),
			page=page,
			page_size=page_size,
			author_id=author_id,
		)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.FeedPageResponse.model_validate(result)


@router.patch("/posts/{post_id}", response_model=AnnotatedContentItem)
async def update_post_endpoint(
	post_id: UUID,
	payload: dto.PostUpdateRequest,
	viewer: Viewer = Depends(get_current_viewer),
	engine: FeedEngine = Depends(get_engine),
) -> AnnotatedContentItem:
	try:
		return await engine.update_item(post_id, viewer.id, body=payload.body, place_label=payload.place_label)
	except FeedError as exc:
		raise to_http_error(exc) from exc


@router.delete("/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def delete_post_endpoint(
	post_id: UUID,
	viewer: Viewer = Depends(get_current_viewer),
	engine: FeedEngine = Depends(get_engine),
) -> Response:
	try:
		await engine.delete_item(post_id, viewer.id)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/posts/{post_id}/counts", response_model=dto.EngagementCounts)
async def post_counts_endpoint(
	post_id: UUID,
	viewer: Optional[Viewer] = Depends(get_optional_viewer),
	engine: FeedEngine = Depends(get_engine),
) -> dto.EngagementCounts:
	try:
		aggregate = await engine.item_counts(post_id, _viewer_id(viewer))
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.EngagementCounts.from_aggregate(aggregate)


@router.put("/posts/{post_id}/like", response_model=dto.EngagementCounts)
async def like_post_endpoint(
	post_id: UUID,
	viewer: Viewer = Depends(get_current_viewer),
	engine: FeedEngine = Depends(get_engine),
) -> dto.EngagementCounts:
	try:
		aggregate = await engine.like(post_id, viewer.id)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.EngagementCounts.from_aggregate(aggregate)


@router.delete("/posts/{post_id}/like", response_model=dto.EngagementCounts)
async def unlike_post_endpoint(
	post_id: UUID,
	viewer: Viewer = Depends(get_current_viewer),
	engine: FeedEngine = Depends(get_engine),
) -> dto.EngagementCounts:
	try:
		aggregate = await engine.unlike(post_id, viewer.id)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.EngagementCounts.from_aggregate(aggregate)


@router.get("/posts/{post_id}/comments", response_model=dto.CommentListResponse)
async def list_comments_endpoint(
	post_id: UUID,
	engine: FeedEngine = Depends(get_engine),
) -> dto.CommentListResponse:
	try:
		comments = await engine.list_comments(post_id)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.CommentListResponse(items=comments)


@router.post("/posts/{post_id}/comments", response_model=dto.CommentCreatedResponse, status_code=201)
async def create_comment_endpoint(
	post_id: UUID,
	payload: dto.CommentCreateRequest,
	viewer: Viewer = Depends(get_current_viewer),
	engine: FeedEngine = Depends(get_engine),
) -> dto.CommentCreatedResponse:
	try:
		comment, aggregate = await engine.add_comment(post_id, viewer.id, payload.body)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.CommentCreatedResponse(comment=comment, counts=dto.EngagementCounts.from_aggregate(aggregate))


@router.delete("/comments/{comment_id}", response_model=dto.EngagementCounts)
async def delete_comment_endpoint(
	comment_id: UUID,
	viewer: Viewer = Depends(get_current_viewer),
	engine: FeedEngine = Depends(get_engine),
) -> dto.EngagementCounts:
	try:
		aggregate = await engine.delete_comment(comment_id, viewer.id)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.EngagementCounts.from_aggregate(aggregate)
