"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary

REQUEST_COUNTER = Counter(
	"geofeed_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"geofeed_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

FEED_CHUNK_FETCHES = Counter(
	"geofeed_feed_chunk_fetches_total",
	"Engagement chunk fetches issued to the count store",
	["result"],
)

FEED_WAVES = Counter(
	"geofeed_feed_waves_total",
	"Paced fetch waves dispatched",
)

FEED_PIPELINE_DURATION = Histogram(
	"geofeed_feed_annotate_duration_seconds",
	"Time spent annotating one batch of content items",
	["mode"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

FEED_ITEMS_ANNOTATED = Counter(
	"geofeed_feed_items_annotated_total",
	"Content items returned with engagement annotations",
	["mode"],
)

FEED_PRIMARY_FAILURES = Counter(
	"geofeed_feed_primary_query_failures_total",
	"Primary content query failures",
	["mode"],
)

FEED_PLANNER_FALLBACKS = Counter(
	"geofeed_feed_planner_fallbacks_total",
	"Batch plans that fell back to the conservative chunk size",
)

FEED_PAGES_LOADED = Counter(
	"geofeed_feed_pages_loaded_total",
	"List pages loaded",
	["exhausted"],
)

COUNTS_CACHE_LOOKUPS = Counter(
	"geofeed_counts_cache_lookups_total",
	"Single-item aggregate cache lookups",
	["result"],
)

VIEWPORT_OUTCOMES = Counter(
	"geofeed_viewport_requests_total",
	"Viewport requests by outcome",
	["outcome"],
)

VIEWPORT_ACTIVE_VIEWS = Gauge(
	"geofeed_viewport_active_views",
	"Map views with a live query coordinator",
)

ENGAGEMENT_WRITES = Counter(
	"geofeed_engagement_writes_total",
	"Like and comment writes",
	["kind", "action"],
)

REDIS_UP = Gauge("geofeed_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("geofeed_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("geofeed_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("geofeed_postgres_latency_seconds", "Postgres ping latency (seconds)")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_chunk_fetch(result: str) -> None:
	FEED_CHUNK_FETCHES.labels(result=result).inc()


def inc_wave() -> None:
	FEED_WAVES.inc()


def observe_annotate(mode: str, items: int, elapsed_seconds: float) -> None:
	FEED_PIPELINE_DURATION.labels(mode=mode).observe(elapsed_seconds)
	FEED_ITEMS_ANNOTATED.labels(mode=mode).inc(items)


def inc_primary_failure(mode: str) -> None:
	FEED_PRIMARY_FAILURES.labels(mode=mode).inc()


def inc_planner_fallback() -> None:
	FEED_PLANNER_FALLBACKS.inc()


def inc_page_loaded(exhausted: bool) -> None:
	FEED_PAGES_LOADED.labels(exhausted="true" if exhausted else "false").inc()


def inc_cache_lookup(hit: bool) -> None:
	COUNTS_CACHE_LOOKUPS.labels(result="hit" if hit else "miss").inc()


def inc_viewport_outcome(outcome: str) -> None:
	VIEWPORT_OUTCOMES.labels(outcome=outcome).inc()


def set_active_views(count: int) -> None:
	VIEWPORT_ACTIVE_VIEWS.set(count)


def inc_engagement_write(kind: str, action: str) -> None:
	ENGAGEMENT_WRITES.labels(kind=kind, action=action).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)
