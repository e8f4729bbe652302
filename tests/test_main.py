"""Tests for application startup and /health."""

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from deploy_lifecycle.core.config import Settings
from deploy_lifecycle.core.container import container
from deploy_lifecycle.core.database import Database
from deploy_lifecycle.main import app
from deploy_lifecycle.services import scheduler


@pytest.fixture
def app_settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        temporal_enabled=False,
        pending_sweep_enabled=True,
        pending_sweep_interval_seconds=30,
    )


@pytest.fixture
def app_client(app_settings, manager):
    with container.settings.override(providers.Object(app_settings)), \
            container.database.override(providers.Object(Database(app_settings))), \
            container.lifecycle_manager.override(providers.Object(manager)):
        with TestClient(app) as client:
            yield client


class TestLifespan:
    def test_uses_container_settings(self, app_client):
        assert scheduler.is_sweep_scheduled()

        health = app_client.get("/health").json()

        assert health["status"] == "healthy"
        assert health["checks"] == {"database": True, "temporal": None}
        assert health["features"]["temporal"] is False
        assert health["features"]["pending_sweep_running"] is True

    def test_shutdown_stops_sweep(self, app_settings, manager):
        with container.settings.override(providers.Object(app_settings)), \
                container.database.override(providers.Object(Database(app_settings))), \
                container.lifecycle_manager.override(providers.Object(manager)):
            with TestClient(app):
                assert scheduler.is_sweep_scheduled()

        assert not scheduler.is_sweep_scheduled()
