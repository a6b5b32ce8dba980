"""Map mode route."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from geofeed.feed.api._errors import to_http_error
from geofeed.feed.api.deps import get_engine
from geofeed.feed.domain.exceptions import FeedError
from geofeed.feed.domain.models import ViewportRequest
from geofeed.feed.schemas import dto
from geofeed.feed.services.engine import FeedEngine
from geofeed.infra.auth import Viewer, get_optional_viewer

router = APIRouter(tags=["feed:map"])


@router.get("/viewport", response_model=dto.ViewportResponse)
async def viewport_endpoint(
	ne_lat: float = Query(...),
	ne_lng: float = Query(...),
	sw_lat: float = Query(...),
	sw_lng: float = Query(...),
	view_id: Optional[str] = Query(default=None, min_length=1, max_length=128),
	viewer: Optional[Viewer] = Depends(get_optional_viewer),
	engine: FeedEngine = Depends(get_engine),
) -> dto.ViewportResponse:
	try:
		request = ViewportRequest.from_bounds(ne_lat=ne_lat, ne_lng=ne_lng, sw_lat=sw_lat, sw_lng=sw_lng)
		outcome = await engine.load_viewport(
			request,
			viewer.id if viewer is not None else None,
			view_id=view_id,
		)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.ViewportResponse.model_validate(outcome)
