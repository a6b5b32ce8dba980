"""Pydantic schemas for the feed API."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from geofeed.feed.domain.models import AnnotatedContentItem, Comment, EngagementAggregate, PlaceMatch


class EngagementCounts(BaseModel):
	like_count: int = 0
	comment_count: int = 0
	liked_by_viewer: bool = False

	model_config = ConfigDict(from_attributes=True)

	@classmethod
	def from_aggregate(cls, aggregate: EngagementAggregate) -> "EngagementCounts":
		return cls(**aggregate.to_dict())


class FeedPageResponse(BaseModel):
	items: List[AnnotatedContentItem]
	page: int
	next_page: Optional[int] = None
	exhausted: bool

	model_config = ConfigDict(from_attributes=True)


class ViewportResponse(BaseModel):
	status: Literal["applied", "duplicate", "superseded"]
	generation: int
	items: List[AnnotatedContentItem] = Field(default_factory=list)

	model_config = ConfigDict(from_attributes=True)


class SearchResponse(BaseModel):
	items: List[AnnotatedContentItem] = Field(default_factory=list)
	places: List[PlaceMatch] = Field(default_factory=list)

	model_config = ConfigDict(from_attributes=True)


class CommentCreateRequest(BaseModel):
	body: str = Field(..., min_length=1, max_length=4000)


class CommentListResponse(BaseModel):
	items: List[Comment]


class CommentCreatedResponse(BaseModel):
	comment: Comment
	counts: EngagementCounts


class PostUpdateRequest(BaseModel):
	body: Optional[str] = Field(default=None, min_length=1, max_length=4000)
	place_label: Optional[str] = Field(default=None, max_length=200)
