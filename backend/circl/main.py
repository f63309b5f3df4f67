"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

import asyncpg
import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.staticfiles import StaticFiles

from circl.api import circles, ops, profile, proximity, social, uploads
from circl.api.errors import install_error_handlers
from circl.api.middleware_request_id import RequestIdMiddleware
from circl.domain.proximity.sockets import ProximityNamespace, set_namespace as set_proximity_namespace
from circl.domain.proximity.tracker import tracker
from circl.domain.social.sockets import SocialNamespace, set_namespace as set_social_namespace
from circl.infra import postgres
from circl.infra.schema import ensure_schema
from circl.obs import init as obs_init
from circl.settings import settings

logger = logging.getLogger(__name__)

_DEV_ORIGINS = [
	"http://localhost:3000",
	"http://127.0.0.1:3000",
	"http://localhost:8081",
	"http://127.0.0.1:8081",
	"http://localhost:19006",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = None
	if not postgres.is_memory_mode():
		try:
			pool = await postgres.init_pool()
		except (OSError, asyncpg.PostgresError):
			logger.warning("postgres unavailable at startup, using in-memory stores", exc_info=True)
			postgres.use_memory_mode(True)
	await ensure_schema(pool)
	try:
		yield
	finally:
		await tracker.reset()
		await postgres.close_pool()


app = FastAPI(title="CircL API", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins or "*" in allow_origins:
	# credentials cannot be combined with a wildcard origin
	allow_origins = _DEV_ORIGINS if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

upload_root = Path(settings.upload_dir).resolve()
app.mount("/uploads", StaticFiles(directory=str(upload_root), check_dir=False), name="uploads")

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
social_namespace = SocialNamespace()
sio.register_namespace(social_namespace)
set_social_namespace(social_namespace)
proximity_namespace = ProximityNamespace()
sio.register_namespace(proximity_namespace)
set_proximity_namespace(proximity_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

app.add_middleware(RequestIdMiddleware)

app.include_router(profile.router)
app.include_router(uploads.router)
app.include_router(proximity.router)
app.include_router(social.router, tags=["social"])
app.include_router(circles.router)
app.include_router(ops.router)
