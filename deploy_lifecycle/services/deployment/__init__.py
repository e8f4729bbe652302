"""Deployment module - record store, state machine, task poller and lifecycle manager."""

from .models import (
    Deployment,
    DeploymentStatus,
    DeploymentUpdate,
    EnvironmentId,
    RejectionReason,
    TransitionSignal,
    TaskStateReport,
    BulkDeleteResult,
    WorkflowStartResult,
)
from .exceptions import (
    DeploymentLifecycleError,
    DeploymentNotFound,
    ConcurrencyConflict,
    StorageFailure,
    BulkDeleteFailure,
    WorkflowStartFailure,
    IllegalTransition,
    TaskStateUnavailable,
)
from .state_machine import TransitionResult, transition
from .store import DeploymentStore, DeploymentStoreProtocol
from .cluster_state import ClusterStateClient, TaskStateSource
from .poller import TaskStatePoller, classify_tasks
from .manager import DeploymentLifecycleManager, StepOutcome, SweepReport

__all__ = [
    # Models
    "Deployment",
    "DeploymentStatus",
    "DeploymentUpdate",
    "EnvironmentId",
    "RejectionReason",
    "TransitionSignal",
    "TaskStateReport",
    "BulkDeleteResult",
    "WorkflowStartResult",
    # Errors
    "DeploymentLifecycleError",
    "DeploymentNotFound",
    "ConcurrencyConflict",
    "StorageFailure",
    "BulkDeleteFailure",
    "WorkflowStartFailure",
    "IllegalTransition",
    "TaskStateUnavailable",
    # State machine
    "TransitionResult",
    "transition",
    # Store
    "DeploymentStore",
    "DeploymentStoreProtocol",
    # Task state
    "ClusterStateClient",
    "TaskStateSource",
    "TaskStatePoller",
    "classify_tasks",
    # Manager
    "DeploymentLifecycleManager",
    "StepOutcome",
    "SweepReport",
]
