"""
Fixtures for exercising the assembled FastAPI application.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from session_relay.app.factory import create_app
from session_relay.config.models import AppConfig, StorageConfig


@pytest.fixture
def app_config() -> AppConfig:
    # Keep the sweeper (real clock) away from fake-clock records during a test
    return AppConfig(storage=StorageConfig(backend="memory", sweep_interval_seconds=3600))


@pytest.fixture
def client(app_config, session_store, connection_registry) -> Generator[TestClient, None, None]:
    app = create_app(app_config, store=session_store, registry=connection_registry)
    with TestClient(app) as test_client:
        yield test_client
