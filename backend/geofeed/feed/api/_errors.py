"""Error translation helpers for the feed API."""

from __future__ import annotations

from fastapi import HTTPException, status

from geofeed.feed.domain import exceptions


def to_http_error(exc: Exception) -> HTTPException:
	"""Translate domain exceptions to FastAPI HTTP errors."""
	if isinstance(exc, HTTPException):
		return exc
	if isinstance(exc, exceptions.PrimaryQueryError):
		return HTTPException(
			status_code=exc.status_code,
			detail=exc.detail,
			headers={"Retry-After": "1"},
		)
	if isinstance(exc, exceptions.FeedError):
		return HTTPException(status_code=exc.status_code, detail=exc.detail)
	return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
