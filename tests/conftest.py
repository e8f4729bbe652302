"""
Shared pytest fixtures for the deployment lifecycle tests.

Provides:
- Settings pointing at a throwaway SQLite file under tmp_path
- A started Database and the SQL-backed DeploymentStore on top of it
- In-memory fakes wired into a DeploymentLifecycleManager
"""

from typing import AsyncIterator

import pytest

from deploy_lifecycle.core.config import Settings
from deploy_lifecycle.core.database import Database
from deploy_lifecycle.services.deployment import (
    Deployment,
    DeploymentLifecycleManager,
    DeploymentStore,
    EnvironmentId,
    TaskStatePoller,
)

from tests.fakes import FakeTaskSource, FakeWorkflowTrigger, InMemoryDeploymentStore


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'deployments.db'}",
        storage_max_attempts=2,
        storage_retry_delay=0.0,
        conflict_max_retries=2,
        temporal_enabled=False,
        pending_sweep_enabled=False,
        log_format="console",
    )


@pytest.fixture
async def database(settings) -> AsyncIterator[Database]:
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest.fixture
async def store(database, settings) -> DeploymentStore:
    return DeploymentStore(database, settings)


@pytest.fixture
def environment_id() -> EnvironmentId:
    return EnvironmentId(account_id="123456789012", cluster="prod-cluster", environment_name="web")


@pytest.fixture
def make_deployment(environment_id):
    """Factory for unsaved Pending deployments."""
    def _make(deployment_id: str = "dep-1", **kwargs) -> Deployment:
        kwargs.setdefault("environment_revision_id", "rev-1")
        return Deployment(deployment_id=deployment_id, environment_id=environment_id, **kwargs)
    return _make


@pytest.fixture
def memory_store() -> InMemoryDeploymentStore:
    return InMemoryDeploymentStore()


@pytest.fixture
def trigger() -> FakeWorkflowTrigger:
    return FakeWorkflowTrigger()


@pytest.fixture
def task_source() -> FakeTaskSource:
    return FakeTaskSource()


@pytest.fixture
def manager(memory_store, trigger, task_source, settings) -> DeploymentLifecycleManager:
    poller = TaskStatePoller(memory_store, task_source)
    return DeploymentLifecycleManager(memory_store, trigger, poller, settings)
