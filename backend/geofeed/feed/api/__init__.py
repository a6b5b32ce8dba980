"""FastAPI routers for the feed engine."""

from __future__ import annotations

from fastapi import APIRouter

from geofeed.feed.api import posts, search, viewport

router = APIRouter(prefix="/api/feed/v1")

router.include_router(posts.router)
router.include_router(viewport.router)
router.include_router(search.router)

__all__ = ["router"]
