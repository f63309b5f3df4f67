import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from circl.domain.circles import service as circles_service
from circl.domain.identity import schemas as identity_schemas
from circl.domain.identity import service as identity_service
from circl.domain.proximity import sockets as proximity_sockets
from circl.domain.proximity import tracker
from circl.domain.social import service as social_service
from circl.domain.social import sockets as social_sockets
from circl.domain.social.schemas import FriendRequestSend
from circl.infra import postgres
from circl.infra.auth import AuthenticatedUser
from circl.main import app
from circl.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
    from circl.infra.redis import redis_client, set_redis_client

    original = redis_client._client
    client = FakeRedis(decode_responses=True)
    set_redis_client(client)
    try:
        yield client
    finally:
        set_redis_client(original)
        await client.flushall()


@pytest.fixture(autouse=True)
def memory_postgres(monkeypatch):
    async def _noop():
        return None

    monkeypatch.setattr(postgres, "init_pool", _noop)
    monkeypatch.setattr(postgres, "close_pool", _noop)
    postgres.set_pool(None)
    postgres.use_memory_mode(True)
    yield
    postgres.use_memory_mode(False)


@pytest.fixture(autouse=True)
def force_test_settings(tmp_path):
    """API tests authenticate via X-User-Id headers, which are only accepted in dev mode."""
    original_env = settings.environment
    original_upload_dir = settings.upload_dir
    settings.environment = "dev"
    settings.upload_dir = str(tmp_path / "uploads")
    try:
        yield
    finally:
        settings.environment = original_env
        settings.upload_dir = original_upload_dir


@pytest_asyncio.fixture(autouse=True)
async def reset_state():
    await identity_service.reset_memory_state()
    await social_service.reset_memory_state()
    await circles_service.reset_memory_state()
    await tracker.reset_memory_state()
    yield
    await tracker.reset_memory_state()


class EmitRecorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict]] = []

    def for_event(self, event: str) -> list[tuple[str, dict]]:
        return [(user_id, payload) for name, user_id, payload in self.events if name == event]


@pytest.fixture(autouse=True)
def emitted(monkeypatch):
    """Capture socket emits instead of going through the Socket.IO server."""
    recorder = EmitRecorder()

    def _capture(event):
        async def _emit(user_id, payload):
            recorder.events.append((event, user_id, payload))

        return _emit

    monkeypatch.setattr(proximity_sockets, "emit_location_update", _capture("location:update"))
    monkeypatch.setattr(proximity_sockets, "emit_location_offline", _capture("location:offline"))
    monkeypatch.setattr(proximity_sockets, "emit_nearby", _capture("proximity:nearby"))
    monkeypatch.setattr(social_sockets, "emit_friend_request", _capture("friend:request"))
    monkeypatch.setattr(social_sockets, "emit_friend_request_update", _capture("friend:request_update"))
    monkeypatch.setattr(social_sockets, "emit_friend_update", _capture("friend:update"))
    monkeypatch.setattr(social_sockets, "emit_circle_update", _capture("circle:update"))
    return recorder


@pytest_asyncio.fixture
async def api_client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


def auth_for(user_id: str) -> AuthenticatedUser:
    return AuthenticatedUser(id=user_id, email=f"{user_id}@example.com")


@pytest.fixture
def make_user():
    async def _make(user_id: str, display_name: str | None = None) -> AuthenticatedUser:
        user = auth_for(user_id)
        await identity_service.create_profile(
            user, identity_schemas.ProfileCreate(display_name=display_name or user_id.title())
        )
        return user

    return _make


@pytest.fixture
def befriend():
    async def _befriend(a: AuthenticatedUser, b: AuthenticatedUser) -> None:
        request = await social_service.send_request(a, FriendRequestSend(email=b.email))
        await social_service.accept_request(b, request.id)

    return _befriend


def dev_headers(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id, "X-User-Email": f"{user_id}@example.com"}


@pytest.fixture
def headers():
    return dev_headers
