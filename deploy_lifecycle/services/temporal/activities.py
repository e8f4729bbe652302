"""Temporal activities - the workflow steps.

Class-based so the worker can hand every activity the same lifecycle manager
(and through it the shared database engine and HTTP settings).

Each step receives the deployment id and returns ``StepOutcome.to_dict()``.
Errors that no retry can fix are raised as non-retryable ApplicationError so
the execution aborts; anything else propagates and the engine retries.
"""

from typing import Any, Awaitable, Callable, Dict

from temporalio import activity
from temporalio.exceptions import ApplicationError

from deploy_lifecycle.constants import CHECK_TASK_STATE_ACTIVITY, START_DEPLOYMENT_ACTIVITY
from deploy_lifecycle.core.logging import get_logger
from deploy_lifecycle.services.deployment.exceptions import DeploymentNotFound, IllegalTransition
from deploy_lifecycle.services.deployment.manager import DeploymentLifecycleManager, StepOutcome

logger = get_logger(__name__)


class DeploymentActivities:
    """Workflow step handlers bound to one lifecycle manager."""

    def __init__(self, manager: DeploymentLifecycleManager):
        self.manager = manager

    @activity.defn(name=START_DEPLOYMENT_ACTIVITY)
    async def start_deployment(self, deployment_id: str) -> Dict[str, Any]:
        return await self._run_step("start_deployment", deployment_id, self.manager.start_deployment)

    @activity.defn(name=CHECK_TASK_STATE_ACTIVITY)
    async def check_task_state(self, deployment_id: str) -> Dict[str, Any]:
        return await self._run_step("check_task_state", deployment_id, self.manager.check_task_state)

    async def _run_step(
        self,
        step: str,
        deployment_id: str,
        handler: Callable[[str], Awaitable[StepOutcome]],
    ) -> Dict[str, Any]:
        try:
            outcome = await handler(deployment_id)
        except (IllegalTransition, DeploymentNotFound) as e:
            logger.error("Workflow step aborted", step=step, deployment_id=deployment_id,
                         error=str(e))
            raise ApplicationError(str(e), e.to_dict(), type=type(e).__name__,
                                   non_retryable=True) from e

        logger.info("Workflow step finished", step=step, deployment_id=deployment_id,
                    status=outcome.deployment.status.value, rejected=outcome.result.rejected)
        return outcome.to_dict()

    def all(self):
        """Bound activity callables for Worker registration."""
        return [self.start_deployment, self.check_task_state]
