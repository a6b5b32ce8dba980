"""Domain models for geo-anchored content and its engagement."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from geofeed.feed.domain.exceptions import ValidationError

EngagementKind = Literal["like", "comment"]

# Viewport corners are compared at ~11cm resolution.
_CANONICAL_PRECISION = 6


@dataclass(slots=True, frozen=True)
class Coordinate:
	lat: float
	lng: float


class Author(BaseModel):
	"""Public profile fields shown next to a content item."""

	id: UUID
	username: Optional[str] = None
	display_name: Optional[str] = None
	avatar_url: Optional[str] = None

	model_config = ConfigDict(from_attributes=True)


class Attachment(BaseModel):
	"""Reference to an uploaded image attached to a content item."""

	id: UUID
	url: str
	order: int = 0

	model_config = ConfigDict(from_attributes=True)


class ContentItem(BaseModel):
	"""A user-authored post anchored to a geographic coordinate."""

	id: UUID
	author_id: UUID
	author: Optional[Author] = None
	body: str
	lat: float
	lng: float
	place_label: Optional[str] = None
	created_at: datetime
	attachments: list[Attachment] = Field(default_factory=list)

	model_config = ConfigDict(from_attributes=True)

	@property
	def coordinate(self) -> Coordinate:
		return Coordinate(lat=self.lat, lng=self.lng)

	def annotate(self, aggregate: "EngagementAggregate") -> "AnnotatedContentItem":
		return AnnotatedContentItem(
			**self.model_dump(),
			like_count=aggregate.like_count,
			comment_count=aggregate.comment_count,
			liked_by_viewer=aggregate.liked_by_viewer,
		)


class AnnotatedContentItem(ContentItem):
	"""Content item carrying the viewer-specific engagement signals."""

	like_count: int = 0
	comment_count: int = 0
	liked_by_viewer: bool = False


class EngagementEdge(BaseModel):
	"""A like or comment relationship between an actor and a content item."""

	item_id: UUID
	actor_id: UUID
	kind: EngagementKind
	body: Optional[str] = None

	model_config = ConfigDict(from_attributes=True)


class Comment(BaseModel):
	"""Represents a comment on a content item."""

	id: UUID
	item_id: UUID
	author_id: UUID
	author: Optional[Author] = None
	body: str
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)


class PlaceMatch(BaseModel):
	"""A place label matching a search along with how many items carry it."""

	place_label: str
	count: int


@dataclass(slots=True, frozen=True)
class EngagementAggregate:
	"""Derived per-item engagement tuple; never persisted."""

	like_count: int = 0
	comment_count: int = 0
	liked_by_viewer: bool = False

	def to_dict(self) -> dict[str, object]:
		return {
			"like_count": self.like_count,
			"comment_count": self.comment_count,
			"liked_by_viewer": self.liked_by_viewer,
		}

	@classmethod
	def from_dict(cls, data: dict) -> "EngagementAggregate":
		return cls(
			like_count=int(data.get("like_count", 0)),
			comment_count=int(data.get("comment_count", 0)),
			liked_by_viewer=bool(data.get("liked_by_viewer", False)),
		)


@dataclass(slots=True, frozen=True)
class CacheEntry:
	aggregate: EngagementAggregate
	computed_at: float

	def is_fresh(self, now: float, ttl_seconds: float) -> bool:
		return now - self.computed_at <= ttl_seconds


@dataclass(slots=True, frozen=True)
class ViewportRequest:
	"""Geographic bounding box currently visible on a map."""

	north_east: Coordinate
	south_west: Coordinate

	@classmethod
	def from_bounds(cls, *, ne_lat: float, ne_lng: float, sw_lat: float, sw_lng: float) -> "ViewportRequest":
		if not (-90.0 <= sw_lat <= ne_lat <= 90.0):
			raise ValidationError("invalid_viewport_latitude")
		if not (-180.0 <= sw_lng <= ne_lng <= 180.0):
			raise ValidationError("invalid_viewport_longitude")
		return cls(
			north_east=Coordinate(lat=ne_lat, lng=ne_lng),
			south_west=Coordinate(lat=sw_lat, lng=sw_lng),
		)

	def canonical_key(self) -> str:
		"""Serialise the box so equivalent viewports compare equal as strings."""
		payload = {
			"ne": [round(self.north_east.lat, _CANONICAL_PRECISION), round(self.north_east.lng, _CANONICAL_PRECISION)],
			"sw": [round(self.south_west.lat, _CANONICAL_PRECISION), round(self.south_west.lng, _CANONICAL_PRECISION)],
		}
		return json.dumps(payload, sort_keys=True, separators=(",", ":"))

	def contains(self, point: Coordinate) -> bool:
		return (
			self.south_west.lat <= point.lat <= self.north_east.lat
			and self.south_west.lng <= point.lng <= self.north_east.lng
		)
