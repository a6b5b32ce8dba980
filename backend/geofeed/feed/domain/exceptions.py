"""Custom exceptions for the feed engine."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class FeedError(Exception):
	"""Base class for feed related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "feed_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class ConfigurationError(FeedError):
	"""Raised when batch constraints cannot yield a positive chunk size."""

	status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
	detail = "feed_configuration_error"


class FetchError(FeedError):
	"""Raised by a count store client when one chunk could not be fetched."""

	status_code = status.HTTP_502_BAD_GATEWAY
	detail = "count_fetch_failed"


class PrimaryQueryError(FeedError):
	"""Raised when the mode-specific content query fails; the client may retry."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "primary_query_failed"
	retryable = True


class NotFoundError(FeedError):
	"""Thrown when a content item or comment is missing."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ForbiddenError(FeedError):
	"""Raised when a write is attempted by someone other than the creator."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class ValidationError(FeedError):
	"""Raised for validation errors not covered by FastAPI schema validation."""

	status_code = _HTTP_422
	detail = "validation_error"
