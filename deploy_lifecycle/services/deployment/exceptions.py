"""Deployment lifecycle exception hierarchy."""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import BulkDeleteResult, Deployment


class DeploymentLifecycleError(Exception):
    """Base exception for all lifecycle errors.

    Carries the deployment id and the attempted operation so every failure
    reaching a caller can be diagnosed without the stack trace.
    """

    def __init__(self, message: str, deployment_id: Optional[str] = None,
                 operation: Optional[str] = None):
        self.deployment_id = deployment_id
        self.operation = operation
        super().__init__(message)

    def to_dict(self):
        return {
            "error": type(self).__name__,
            "message": str(self),
            "deployment_id": self.deployment_id,
            "operation": self.operation,
        }


class DeploymentNotFound(DeploymentLifecycleError):
    """No record exists for the deployment id."""

    def __init__(self, deployment_id: str, operation: Optional[str] = None):
        super().__init__(f"Deployment with id {deployment_id} does not exist",
                         deployment_id=deployment_id, operation=operation)


class ConcurrencyConflict(DeploymentLifecycleError):
    """A write carried a stale record version. Reload and retry."""

    def __init__(self, deployment_id: str, expected_version: int,
                 actual_version: Optional[int] = None, operation: Optional[str] = "update"):
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = f"expected version {expected_version}"
        if actual_version is not None:
            detail += f", found {actual_version}"
        super().__init__(f"Concurrent modification of deployment {deployment_id} ({detail})",
                         deployment_id=deployment_id, operation=operation)


class StorageFailure(DeploymentLifecycleError):
    """The persistent store was unreachable or rejected the write."""


class BulkDeleteFailure(StorageFailure):
    """Some deletes of a bulk delete failed; the operation is partially applied."""

    def __init__(self, result: "BulkDeleteResult"):
        self.result = result
        super().__init__(
            f"Bulk delete partially applied: {result.deleted} deleted, "
            f"{len(result.failed_ids)} failed",
            operation="delete_all",
        )


class WorkflowStartFailure(DeploymentLifecycleError):
    """The workflow engine refused to start an execution.

    The deployment stays Pending; the pending sweep re-attempts the start.
    """

    def __init__(self, deployment_id: str, message: str,
                 deployment: Optional["Deployment"] = None):
        self.deployment = deployment
        super().__init__(f"Could not start workflow for deployment {deployment_id}: {message}",
                         deployment_id=deployment_id, operation="start_workflow")


class IllegalTransition(DeploymentLifecycleError):
    """A signal targeted a state unreachable from the current one."""

    def __init__(self, deployment_id: str, current_status: str, signal: str):
        self.current_status = current_status
        self.signal = signal
        super().__init__(
            f"Signal {signal} is illegal for deployment {deployment_id} in status {current_status}",
            deployment_id=deployment_id, operation=f"apply_signal:{signal}",
        )


class TaskStateUnavailable(DeploymentLifecycleError):
    """The cluster state service could not be queried. Transient."""
