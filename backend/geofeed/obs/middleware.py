"""Request id propagation, access logging and HTTP metrics."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from geofeed.obs import logging as obs_logging
from geofeed.obs import metrics
from geofeed.settings import settings

REQUEST_ID_HEADER = "X-Request-Id"


def _route_template(request: Request) -> str:
	# Matched route template, or the raw path when routing failed
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._logger = obs_logging.get_logger("geofeed.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not (self._enabled and settings.obs_enabled):
			return await call_next(request)

		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		request.state.request_id = request_id
		tokens = obs_logging.bind_context(
			request_id=request_id,
			route=request.url.path,
			user_id=request.headers.get("X-User-Id"),
			client_ip=request.client.host if request.client else None,
		)
		started = time.perf_counter()
		try:
			try:
				response = await call_next(request)
			except Exception:
				self._observe(request, 500, started)
				self._logger.exception("http_request_error", extra={"method": request.method})
				raise
			self._observe(request, response.status_code, started)
		finally:
			obs_logging.reset_context(tokens)
		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response

	def _observe(self, request: Request, status_code: int, started: float) -> None:
		elapsed = time.perf_counter() - started
		metrics.observe_request(_route_template(request), request.method, status_code, elapsed)
		self._logger.info(
			"http_request",
			extra={"status": status_code, "method": request.method, "latency_ms": round(elapsed * 1000, 3)},
		)


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
