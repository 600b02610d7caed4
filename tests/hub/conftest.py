"""Shared fixtures for tests/hub/ API tests.

``api_hub`` is a mock PresenceHub for TestClient tests that exercise
routing and error mapping. The real-hub client lives in tests/conftest.py.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from tests.helpers import T0
from vigil.hub.api import create_api
from vigil.hub.core import PresenceHub
from vigil.shared.models import User


@pytest.fixture
def api_user():
    return User(id=7, username="alice", created_at=T0)


@pytest.fixture
def api_hub(api_user):
    """Create a mock PresenceHub whose identity store knows ``api_user``."""
    mock_hub = MagicMock(spec=PresenceHub)
    mock_hub.users = MagicMock()
    mock_hub.users.get_user = AsyncMock(return_value=api_user)
    mock_hub.sensors = MagicMock()
    mock_hub.events = MagicMock()
    mock_hub.gateway = MagicMock()
    mock_hub.aggregation = MagicMock()
    mock_hub._request_count = 0
    mock_hub.get_uptime_seconds = MagicMock(return_value=0)
    return mock_hub


@pytest.fixture
def api_client(api_hub, api_config):
    """Create a FastAPI TestClient backed by api_hub."""
    app = create_api(api_hub, api_config)
    return TestClient(app)

