"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from geofeed.api import ops
from geofeed.api.errors import install_error_handlers
from geofeed.feed.api import router as feed_router
from geofeed.feed.services.engine import build_engine
from geofeed.infra import postgres
from geofeed.infra.redis import redis_client
from geofeed.obs import init as obs_init
from geofeed.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	engine = build_engine()
	app.state.feed_engine = engine
	try:
		yield
	finally:
		await engine.close()
		await redis_client.aclose()
		await postgres.close_pool()


app = FastAPI(title="Geofeed", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(getattr(settings, "cors_allow_origins", []))
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

app.include_router(feed_router, tags=["feed"])
app.include_router(ops.router, tags=["ops"])
