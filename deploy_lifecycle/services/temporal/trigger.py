"""Workflow trigger - starts one Temporal execution per deployment.

The execution id is derived from the deployment id, so a duplicate start is
refused by the engine instead of spawning a parallel execution.
"""

from temporalio.common import WorkflowIDReusePolicy
from temporalio.exceptions import WorkflowAlreadyStartedError

from deploy_lifecycle.core.config import Settings
from deploy_lifecycle.core.logging import get_logger
from deploy_lifecycle.services.deployment.exceptions import WorkflowStartFailure
from deploy_lifecycle.services.deployment.models import WorkflowStartResult
from .client import TemporalConnection

logger = get_logger(__name__)


def execution_name(deployment_id: str, prefix: str = "deployment-") -> str:
    """Deterministic workflow id for a deployment."""
    if not deployment_id:
        raise ValueError("deployment_id must not be empty")
    return f"{prefix}{deployment_id}"


class TemporalWorkflowTrigger:
    """Submits deployment executions to the pre-provisioned workflow type."""

    def __init__(self, connection: TemporalConnection, settings: Settings):
        self.connection = connection
        self.workflow_type = settings.temporal_workflow_type
        self.task_queue = settings.temporal_task_queue
        self.execution_name_prefix = settings.execution_name_prefix

    async def start_workflow(self, deployment_id: str) -> WorkflowStartResult:
        """Start the deployment workflow with the deployment id as input.

        Raises:
            WorkflowStartFailure: the engine was unreachable or refused the start
        """
        name = execution_name(deployment_id, self.execution_name_prefix)

        try:
            client = await self.connection.get_client()
            handle = await client.start_workflow(
                self.workflow_type,
                deployment_id,
                id=name,
                task_queue=self.task_queue,
                # A failed or cancelled execution may be restarted by the pending sweep,
                # a running or completed one may not
                id_reuse_policy=WorkflowIDReusePolicy.ALLOW_DUPLICATE_FAILED_ONLY,
            )
        except WorkflowAlreadyStartedError:
            logger.info("Workflow execution already exists", deployment_id=deployment_id,
                        execution_name=name)
            return WorkflowStartResult(deployment_id, name, already_started=True)
        except Exception as e:
            logger.error("Workflow start failed", deployment_id=deployment_id,
                         execution_name=name, workflow_type=self.workflow_type, error=str(e))
            raise WorkflowStartFailure(deployment_id, f"{type(e).__name__}: {e}") from e

        logger.info("Workflow execution started", deployment_id=deployment_id,
                    execution_name=name, run_id=handle.result_run_id)
        return WorkflowStartResult(deployment_id, name, run_id=handle.result_run_id)
