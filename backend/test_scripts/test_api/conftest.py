"""
API test fixtures.

Requests go through httpx's ASGI transport straight into the FastAPI app;
the facade dependency is overridden with one bound to the per-test database.
"""
import httpx
import pytest_asyncio

from backend.app.api.v1.dependencies import get_facade
from backend.app.config import get_settings
from backend.app.main import app

API_PREFIX = get_settings().API_V1_PREFIX


def actor_headers(actor_id: int, role: str) -> dict:
    return {"X-Actor-Id": str(actor_id), "X-Actor-Role": role}


@pytest_asyncio.fixture
async def client(facade):
    app.dependency_overrides[get_facade] = lambda: facade
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url=f"http://test{API_PREFIX}") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_headers(admin) -> dict:
    return actor_headers(admin.id, "ADMIN")


@pytest_asyncio.fixture
async def member_headers(member) -> dict:
    return actor_headers(member.id, "MEMBER")
