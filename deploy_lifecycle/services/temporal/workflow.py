"""Temporal workflow - drives one deployment through its lifecycle.

The workflow ONLY orchestrates:
- runs the start step once
- re-runs the task state check on a fixed interval
- ends when the check reports a terminal status

All reads, decisions and writes happen in activities, which call the
lifecycle manager.
"""

from datetime import timedelta
from typing import Any, Dict

from temporalio import workflow
from temporalio.common import RetryPolicy

from deploy_lifecycle.constants import CHECK_TASK_STATE_ACTIVITY, START_DEPLOYMENT_ACTIVITY

POLL_INTERVAL = timedelta(seconds=10)
STEP_TIMEOUT = timedelta(minutes=1)

STEP_RETRY_POLICY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    maximum_interval=timedelta(seconds=30),
    maximum_attempts=10,
    non_retryable_error_types=["IllegalTransition", "DeploymentNotFound"],
)


@workflow.defn(name="DeploymentWorkflow", sandboxed=False)
class DeploymentWorkflow:
    """Deployment lifecycle orchestrator.

    Input is the deployment id. Returns the final deployment status.
    """

    @workflow.run
    async def run(self, deployment_id: str) -> str:
        workflow.logger.info(f"Starting deployment workflow for {deployment_id}")

        outcome = await self._step(START_DEPLOYMENT_ACTIVITY, deployment_id)

        polls = 0
        while not outcome["terminal"]:
            await workflow.sleep(POLL_INTERVAL)
            outcome = await self._step(CHECK_TASK_STATE_ACTIVITY, deployment_id)
            polls += 1

        workflow.logger.info(
            f"Deployment {deployment_id} finished as {outcome['status']} after {polls} poll(s)"
        )
        return outcome["status"]

    async def _step(self, activity_name: str, deployment_id: str) -> Dict[str, Any]:
        return await workflow.execute_activity(
            activity_name,
            deployment_id,
            start_to_close_timeout=STEP_TIMEOUT,
            retry_policy=STEP_RETRY_POLICY,
        )
