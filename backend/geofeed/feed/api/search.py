"""Search mode route."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from geofeed.feed.api._errors import to_http_error
from geofeed.feed.api.deps import get_engine
from geofeed.feed.domain.exceptions import FeedError
from geofeed.feed.schemas import dto
from geofeed.feed.services.engine import FeedEngine
from geofeed.infra.auth import Viewer, get_optional_viewer

router = APIRouter(tags=["feed:search"])


@router.get("/search", response_model=dto.SearchResponse)
async def search_endpoint(
	q: str = Query(..., max_length=200),
	viewer: Optional[Viewer] = Depends(get_optional_viewer),
	engine: FeedEngine = Depends(get_engine),
) -> dto.SearchResponse:
	try:
		result = await engine.search_all(q, viewer.id if viewer is not None else None)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.SearchResponse.model_validate(result)
