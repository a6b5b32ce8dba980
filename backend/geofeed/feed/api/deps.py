"""Dependency helpers for feed routes."""

from __future__ import annotations

from fastapi import Request

from geofeed.feed.services.engine import FeedEngine


def get_engine(request: Request) -> FeedEngine:
	return request.app.state.feed_engine
