"""Task state poller - read and classify, never write.

Safe for unlimited re-invocation by the workflow engine's retry policy.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from deploy_lifecycle.constants import (
    TASK_STARTING_STATUSES,
    TASK_STATUS_RUNNING,
    TASK_STOPPED_STATUSES,
)
from deploy_lifecycle.core.logging import get_logger
from .cluster_state import TaskStateSource
from .models import Deployment, TaskStateReport, TaskStateSnapshot, TransitionSignal
from .store import DeploymentStoreProtocol

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify_tasks(deployment: Deployment, snapshot: TaskStateSnapshot,
                   timeout: Optional[timedelta] = None,
                   now: Optional[datetime] = None) -> TaskStateReport:
    """Reduce the cluster's view of a deployment's tasks to one signal.

    Order matters: a timeout or any failure wins over partial progress.
    """
    counts = Counter()
    for task in snapshot.tasks:
        if task.last_status == TASK_STATUS_RUNNING:
            counts["running"] += 1
        elif task.last_status in TASK_STARTING_STATUSES:
            counts["starting"] += 1
        elif task.last_status in TASK_STOPPED_STATUSES:
            counts["stopped"] += 1
        else:
            counts["unknown"] += 1
    counts["failures"] = len(snapshot.failures)
    task_counts = dict(counts)

    def report(signal: TransitionSignal, summary: str) -> TaskStateReport:
        return TaskStateReport(deployment.deployment_id, signal, summary, task_counts)

    if timeout is not None and deployment.created_at is not None and not deployment.is_terminal:
        age = (now or _utcnow()) - deployment.created_at
        if age > timeout:
            return report(TransitionSignal.TASKS_UNHEALTHY,
                          f"Deployment timed out after {int(age.total_seconds())}s")

    if snapshot.failures:
        return report(TransitionSignal.TASKS_UNHEALTHY,
                      f"{len(snapshot.failures)} task failure(s): {'; '.join(snapshot.failures[:3])}")

    crashed = [t for t in snapshot.tasks
               if t.last_status in TASK_STOPPED_STATUSES and t.desired_status == TASK_STATUS_RUNNING]
    if crashed:
        reasons = "; ".join(t.stopped_reason or t.task_arn for t in crashed[:3])
        return report(TransitionSignal.TASKS_UNHEALTHY,
                      f"{len(crashed)} task(s) stopped unexpectedly: {reasons}")

    if not snapshot.tasks:
        return report(TransitionSignal.TASKS_IN_PROGRESS, "No tasks started yet")

    if counts["starting"] or counts["unknown"]:
        return report(TransitionSignal.TASKS_IN_PROGRESS,
                      f"{counts['starting'] + counts['unknown']} of {len(snapshot.tasks)} task(s) still starting")

    desired = deployment.desired_task_count
    if desired is not None and counts["running"] < desired:
        return report(TransitionSignal.TASKS_IN_PROGRESS,
                      f"{counts['running']} of {desired} desired task(s) running")

    return report(TransitionSignal.TASKS_COMPLETE, f"All {counts['running']} task(s) running")


class TaskStatePoller:
    """Looks up a deployment's tasks and reports a transition signal."""

    def __init__(self, store: DeploymentStoreProtocol, task_source: TaskStateSource,
                 deployment_timeout_seconds: Optional[int] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.task_source = task_source
        self.timeout = (timedelta(seconds=deployment_timeout_seconds)
                        if deployment_timeout_seconds else None)
        self._clock = clock

    async def poll_task_state(self, deployment_id: str) -> TaskStateReport:
        deployment = await self.store.get_by_id(deployment_id)
        snapshot = await self.task_source.list_tasks(deployment.cluster_identifier, deployment_id)
        report = classify_tasks(deployment, snapshot, self.timeout, self._clock())

        logger.info("Task state polled", deployment_id=deployment_id,
                    cluster=deployment.cluster_identifier, signal=report.signal.value,
                    summary=report.summary)
        return report
