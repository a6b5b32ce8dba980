"""JSON logging with request-scoped context.

The observability middleware binds request fields into context variables; every
record emitted while the request is handled carries them. ``extra=`` fields are
sanitised so post bodies and coordinates never reach the log stream.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from geofeed.settings import settings

_LOGGER_NAME = "geofeed"

# Output key -> context variable
_CONTEXT: Dict[str, ContextVar[Optional[str]]] = {
	"request_id": ContextVar("geofeed_request_id", default=None),
	"route": ContextVar("geofeed_route", default=None),
	"user_id": ContextVar("geofeed_user_id", default=None),
	"ip": ContextVar("geofeed_client_ip", default=None),
}

_REDACTED = "[redacted]"
_SENSITIVE_KEYWORDS = (
	"token",
	"secret",
	"authorization",
	"password",
	"body",
	"content",
	"latitude",
	"longitude",
	"lat",
	"lng",
)

_MAX_STRING_LENGTH = 256
_MAX_COLLECTION_ITEMS = 10

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def bind_context(
	*,
	request_id: Optional[str] = None,
	route: Optional[str] = None,
	user_id: Optional[str] = None,
	client_ip: Optional[str] = None,
) -> Dict[str, Token]:
	"""Bind request fields and return the tokens needed to unbind them."""
	values = {"request_id": request_id, "route": route, "user_id": user_id, "ip": client_ip}
	return {key: _CONTEXT[key].set(value) for key, value in values.items() if value is not None}


def reset_context(tokens: Dict[str, Token]) -> None:
	for key, token in tokens.items():
		_CONTEXT[key].reset(token)


def current_request_id(default: str = "unknown") -> str:
	return _CONTEXT["request_id"].get() or default


def _is_sensitive(key: str) -> bool:
	lowered = key.lower()
	return any(keyword in lowered for keyword in _SENSITIVE_KEYWORDS)


def _sanitize(key: str, value: Any) -> Any:
	if _is_sensitive(key):
		return _REDACTED
	if isinstance(value, str) and len(value) > _MAX_STRING_LENGTH:
		return f"{value[:_MAX_STRING_LENGTH]}…"
	if isinstance(value, dict):
		items = list(value.items())
		cleaned = {str(k): _sanitize(str(k), v) for k, v in items[:_MAX_COLLECTION_ITEMS]}
		if len(items) > _MAX_COLLECTION_ITEMS:
			cleaned["…"] = f"+{len(items) - _MAX_COLLECTION_ITEMS} keys"
		return cleaned
	if isinstance(value, (list, tuple, set)):
		values = list(value)
		cleaned_list = [_sanitize(key, item) for item in values[:_MAX_COLLECTION_ITEMS]]
		if len(values) > _MAX_COLLECTION_ITEMS:
			cleaned_list.append("…")
		return cleaned_list
	return value


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per line."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		for key, var in _CONTEXT.items():
			value = var.get()
			if value:
				payload[key] = value
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in record.__dict__.items():
			if key in _STANDARD_ATTRS or key in payload:
				continue
			payload[key] = _sanitize(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a fraction of INFO records; everything else passes."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = min(1.0, max(0.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers.clear()
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
