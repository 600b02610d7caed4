"""Shared fixtures: a fully initialized hub on a temp database."""

import httpx
import pytest
import pytest_asyncio

from vigil.config import VigilConfig
from vigil.hub.api import create_api
from vigil.hub.core import PresenceHub


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "vigil.db")


@pytest.fixture
def api_config(db_path):
    return VigilConfig(db_path=db_path, request_timeout=5.0)


@pytest_asyncio.fixture
async def hub(db_path):
    """Initialize a PresenceHub and shut it down after the test."""
    h = PresenceHub(db_path)
    await h.initialize()
    yield h
    await h.shutdown()


@pytest_asyncio.fixture
async def alice(hub):
    return await hub.users.create_user("alice")


@pytest_asyncio.fixture
async def bob(hub):
    return await hub.users.create_user("bob")


@pytest_asyncio.fixture
async def live_client(hub, api_config):
    """httpx client against an app wired to the real ``hub``, on the test's own event loop."""
    app = create_api(hub, api_config)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
