"""Deployment domain models.

All models are plain dataclasses and JSON-serializable via ``to_dict`` so they
can cross the workflow engine boundary and the HTTP API unchanged.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional

ENVIRONMENT_ID_DELIMITER = "/"


class DeploymentStatus(str, Enum):
    """Deployment lifecycle states.

    State transitions:
        Pending -> InProgress -> Completed
                              -> Failed
    Completed and Failed are terminal.
    """
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({DeploymentStatus.COMPLETED, DeploymentStatus.FAILED})


class TransitionSignal(str, Enum):
    """Classified outcome of a workflow step, fed to the state machine."""
    START = "start"
    TASKS_IN_PROGRESS = "taskHealthyButIncomplete"
    TASKS_COMPLETE = "taskAllHealthyAndComplete"
    TASKS_UNHEALTHY = "taskUnhealthyOrTimedOut"


class RejectionReason(str, Enum):
    """Why the state machine refused a signal."""
    NOT_YET = "not_yet"        # Condition not met, re-poll later
    TERMINAL = "terminal"      # Deployment already finished
    ILLEGAL = "illegal"        # Defect in the caller, abort the execution


@dataclass(frozen=True)
class EnvironmentId:
    """Composite identity of the environment a deployment targets."""
    account_id: str
    cluster: str
    environment_name: str

    def __post_init__(self):
        for name in ("account_id", "cluster", "environment_name"):
            value = getattr(self, name)
            if not value:
                raise ValueError(f"{name} must not be empty")
            if ENVIRONMENT_ID_DELIMITER in value:
                raise ValueError(f"{name} must not contain '{ENVIRONMENT_ID_DELIMITER}': {value}")

    def account_id_cluster(self) -> str:
        return ENVIRONMENT_ID_DELIMITER.join((self.account_id, self.cluster))

    def account_id_cluster_environment_name(self) -> str:
        return ENVIRONMENT_ID_DELIMITER.join((self.account_id, self.cluster, self.environment_name))

    @classmethod
    def from_account_id_cluster_environment_name(cls, composite: str) -> "EnvironmentId":
        parts = composite.split(ENVIRONMENT_ID_DELIMITER)
        if len(parts) != 3:
            raise ValueError(f"Malformed environment key: {composite!r}")
        return cls(account_id=parts[0], cluster=parts[1], environment_name=parts[2])

    def to_dict(self) -> Dict[str, str]:
        return {
            "account_id": self.account_id,
            "cluster": self.cluster,
            "environment_name": self.environment_name,
        }


@dataclass
class Deployment:
    """A tracked unit of rollout work targeting one environment revision.

    ``deployment_id``, ``environment_id`` and ``environment_revision_id`` are
    fixed at creation. ``record_version``, ``created_at`` and
    ``last_updated_at`` are assigned by the record store.
    """
    deployment_id: str
    environment_id: EnvironmentId
    environment_revision_id: str
    status: DeploymentStatus = DeploymentStatus.PENDING
    status_reason: Optional[str] = None
    desired_task_count: Optional[int] = None
    record_version: int = 0
    created_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None

    @property
    def cluster_identifier(self) -> str:
        return self.environment_id.cluster

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "environment_id": self.environment_id.to_dict(),
            "environment_revision_id": self.environment_revision_id,
            "cluster_identifier": self.cluster_identifier,
            "status": self.status.value,
            "status_reason": self.status_reason,
            "desired_task_count": self.desired_task_count,
            "record_version": self.record_version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_updated_at": self.last_updated_at.isoformat() if self.last_updated_at else None,
        }


@dataclass
class DeploymentUpdate:
    """Fields a caller wants to change, guarded by the version it last read.

    ``None`` means the caller does not touch that field, so fields written
    concurrently by someone else survive the merge.
    """
    deployment_id: str
    record_version: int
    status: Optional[DeploymentStatus] = None
    status_reason: Optional[str] = None
    desired_task_count: Optional[int] = None

    def changed_fields(self) -> Dict[str, Any]:
        changes = {}
        if self.status is not None:
            changes["status"] = self.status
        if self.status_reason is not None:
            changes["status_reason"] = self.status_reason
        if self.desired_task_count is not None:
            changes["desired_task_count"] = self.desired_task_count
        return changes


@dataclass
class TaskSummary:
    """Health snapshot of one cluster task started by a deployment."""
    task_arn: str
    last_status: str
    desired_status: str
    stopped_reason: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskSummary":
        return cls(
            task_arn=data.get("taskARN") or data.get("task_arn", ""),
            last_status=str(data.get("lastStatus") or data.get("last_status") or "").upper(),
            desired_status=str(data.get("desiredStatus") or data.get("desired_status") or "").upper(),
            stopped_reason=data.get("stoppedReason") or data.get("stopped_reason"),
        )


@dataclass
class TaskStateSnapshot:
    """Tasks and reported failures for one deployment on one cluster."""
    tasks: List[TaskSummary] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)


@dataclass
class TaskStateReport:
    """Poller output: the classified signal plus a human-readable summary."""
    deployment_id: str
    signal: TransitionSignal
    summary: str
    task_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "signal": self.signal.value,
            "summary": self.summary,
            "task_counts": dict(self.task_counts),
        }


@dataclass
class BulkDeleteResult:
    """Aggregated outcome of the administrative bulk delete."""
    deleted: int = 0
    failed_ids: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failed_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {"deleted": self.deleted, "failed": len(self.failed_ids), "failed_ids": list(self.failed_ids)}


@dataclass
class WorkflowStartResult:
    """Handle of a workflow execution started for a deployment."""
    deployment_id: str
    execution_name: str
    run_id: Optional[str] = None
    already_started: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "execution_name": self.execution_name,
            "run_id": self.run_id,
            "already_started": self.already_started,
        }
