"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files; pytest discovers this by convention.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tortoise import Tortoise, connections

from app.deps import get_current_user
from app.errors import register_exception_handlers
from app.routers import auth, bookings, experiences, health, tasks, users

from .factories import make_admin, make_host, make_user

TEST_DB_CONFIG = {
    "connections": {"default": "sqlite://:memory:"},
    "apps": {"models": {"models": ["app.models"], "default_connection": "default"}},
    "use_tz": True,
    "timezone": "UTC",
}

# ---------------------------------------------------------------------------
# Redis is never reached in tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def no_browse_cache():
    with (
        patch("app.routers.experiences.get_browse_cache", AsyncMock(return_value=None)) as get_,
        patch("app.routers.experiences.set_browse_cache", AsyncMock()) as set_,
        patch("app.routers.experiences.invalidate_browse_cache", AsyncMock()) as invalidate,
    ):
        yield {"get": get_, "set": set_, "invalidate": invalidate}


# ---------------------------------------------------------------------------
# App builder, used by all client fixtures
# ---------------------------------------------------------------------------


def build_app(current_user=None) -> FastAPI:
    """
    Fresh FastAPI app with every router mounted and the principal dependency
    overridden to return `current_user` unconditionally. The policy
    dependencies still run, so role checks are exercised for real.

    Pass `current_user=None` to keep real token authentication.
    """
    app = FastAPI()
    register_exception_handlers(app)
    for module in (health, auth, users, experiences, bookings, tasks):
        app.include_router(module.router)

    if current_user is not None:

        async def _user():
            return current_user

        app.dependency_overrides[get_current_user] = _user

    return app


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def user_client():
    return TestClient(build_app(make_user()), raise_server_exceptions=True)


@pytest.fixture()
def host_client():
    return TestClient(build_app(make_host()), raise_server_exceptions=True)


@pytest.fixture()
def admin_client():
    return TestClient(build_app(make_admin()), raise_server_exceptions=True)


@pytest.fixture()
def anon_client():
    """No overrides: real bearer-token authentication runs."""
    return TestClient(build_app(), raise_server_exceptions=True)


@pytest.fixture()
def client_factory():
    def _make(current_user=None, raise_server_exceptions: bool = True) -> TestClient:
        return TestClient(
            build_app(current_user), raise_server_exceptions=raise_server_exceptions
        )

    return _make


# ---------------------------------------------------------------------------
# Store fixture: real Tortoise models on in-memory SQLite
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db():
    await Tortoise.init(config=TEST_DB_CONFIG)
    await Tortoise.generate_schemas()
    yield
    await connections.close_all()
