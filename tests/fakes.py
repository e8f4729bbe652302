"""In-memory stand-ins for the lifecycle manager's collaborators."""

import copy
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from deploy_lifecycle.services.deployment import (
    BulkDeleteResult,
    ConcurrencyConflict,
    Deployment,
    DeploymentNotFound,
    DeploymentStatus,
    DeploymentUpdate,
    StorageFailure,
    WorkflowStartFailure,
    WorkflowStartResult,
)
from deploy_lifecycle.services.deployment.models import TaskStateSnapshot, TaskSummary

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


class InMemoryDeploymentStore:
    """Dict-backed store with the same contract as DeploymentStore.

    With ``stale_index=True`` the status index only catches up on
    ``refresh_index()``, the way an eventually consistent secondary index does.
    """

    def __init__(self, stale_index: bool = False):
        self.records: Dict[str, Deployment] = {}
        self.stale_index = stale_index
        self._index: Dict[str, Deployment] = {}
        self._created = 0
        self.update_calls = 0

    def refresh_index(self) -> None:
        self._index = {i: copy.copy(d) for i, d in self.records.items()}

    def _index_write(self, deployment: Deployment) -> None:
        if not self.stale_index:
            self._index[deployment.deployment_id] = copy.copy(deployment)

    async def create(self, deployment: Deployment) -> Deployment:
        if deployment.deployment_id in self.records:
            raise StorageFailure("duplicate", deployment_id=deployment.deployment_id, operation="create")
        self._created += 1
        now = EPOCH + timedelta(seconds=self._created)
        stored = replace(deployment, record_version=0, created_at=now, last_updated_at=now)
        self.records[stored.deployment_id] = stored
        self._index[stored.deployment_id] = copy.copy(stored)
        return copy.copy(stored)

    async def update(self, update: DeploymentUpdate) -> Deployment:
        self.update_calls += 1
        current = self.records.get(update.deployment_id)
        if current is None:
            raise DeploymentNotFound(update.deployment_id, operation="update")
        if current.record_version != update.record_version:
            raise ConcurrencyConflict(update.deployment_id, update.record_version, current.record_version)
        merged = replace(current, **update.changed_fields(),
                         record_version=current.record_version + 1,
                         last_updated_at=(current.last_updated_at or EPOCH) + timedelta(seconds=1))
        self.records[merged.deployment_id] = merged
        self._index_write(merged)
        return copy.copy(merged)

    async def get_by_id(self, deployment_id: str) -> Deployment:
        try:
            return copy.copy(self.records[deployment_id])
        except KeyError:
            raise DeploymentNotFound(deployment_id, operation="get_by_id") from None

    async def list_by_status(self, status: DeploymentStatus) -> List[Deployment]:
        # Index entries may point at rows that have since changed or been deleted
        return [copy.copy(d) for d in self._index.values() if d.status is status]

    def delete_behind_index(self, deployment_id: str) -> None:
        del self.records[deployment_id]

    async def list_all(self) -> List[Deployment]:
        return [copy.copy(d) for d in self.records.values()]

    async def delete_all(self) -> BulkDeleteResult:
        deleted = len(self.records)
        self.records.clear()
        self._index.clear()
        return BulkDeleteResult(deleted=deleted)


class ConflictingStore(InMemoryDeploymentStore):
    """Another writer sneaks in before each of the first ``conflicts`` updates."""

    def __init__(self, conflicts: int = 1):
        super().__init__()
        self.conflicts = conflicts

    async def update(self, update: DeploymentUpdate) -> Deployment:
        if self.conflicts > 0:
            self.conflicts -= 1
            current = self.records[update.deployment_id]
            self.records[update.deployment_id] = replace(
                current, record_version=current.record_version + 1,
                status_reason="touched by another writer",
            )
        return await super().update(update)


class FakeWorkflowTrigger:
    """Records start requests; one execution per deployment id."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.started: List[str] = []
        self.attempts: List[str] = []

    async def start_workflow(self, deployment_id: str) -> WorkflowStartResult:
        self.attempts.append(deployment_id)
        if self.fail:
            raise WorkflowStartFailure(deployment_id, "engine unreachable")
        name = f"deployment-{deployment_id}"
        if deployment_id in self.started:
            return WorkflowStartResult(deployment_id, name, already_started=True)
        self.started.append(deployment_id)
        return WorkflowStartResult(deployment_id, name, run_id=f"run-{len(self.started)}")

    def execution_failed(self, deployment_id: str) -> None:
        """The execution ran out of retries; its id may be started again."""
        self.started.remove(deployment_id)


class FakeTaskSource:
    """Serves canned task snapshots per deployment id."""

    def __init__(self):
        self.snapshots: Dict[str, TaskStateSnapshot] = {}
        self.queries: List[tuple] = []

    def set_tasks(self, deployment_id: str, *statuses: str,
                  failures: Optional[List[str]] = None,
                  desired_status: str = "RUNNING") -> None:
        tasks = [
            TaskSummary(task_arn=f"task-{i}", last_status=s, desired_status=desired_status)
            for i, s in enumerate(statuses)
        ]
        self.snapshots[deployment_id] = TaskStateSnapshot(tasks=tasks, failures=list(failures or []))

    async def list_tasks(self, cluster: str, started_by: str) -> TaskStateSnapshot:
        self.queries.append((cluster, started_by))
        return self.snapshots.get(started_by, TaskStateSnapshot())
