"""Temporal worker for the deployment workflow.

The worker polls the task queue and executes:
- DeploymentWorkflow: sequences the lifecycle steps
- DeploymentActivities: start and task-state-check steps, bound to the lifecycle manager

Several workers may poll the same queue; every step is idempotent and status
writes are version-checked, so overlapping deliveries are harmless.
"""

import asyncio
from typing import Optional

from temporalio.client import Client
from temporalio.worker import Worker

from deploy_lifecycle.core.logging import get_logger
from deploy_lifecycle.services.deployment.manager import DeploymentLifecycleManager
from .activities import DeploymentActivities
from .workflow import DeploymentWorkflow

logger = get_logger(__name__)


def create_worker(
    client: Client,
    manager: DeploymentLifecycleManager,
    task_queue: str,
    max_concurrent_activities: int = 50,
) -> Worker:
    """Create a worker instance (not started)."""
    activities = DeploymentActivities(manager)
    return Worker(
        client,
        task_queue=task_queue,
        workflows=[DeploymentWorkflow],
        activities=activities.all(),
        max_concurrent_activities=max_concurrent_activities,
        max_concurrent_workflow_tasks=10,
    )


class TemporalWorkerManager:
    """Manages the in-process Temporal worker lifecycle."""

    def __init__(
        self,
        client: Client,
        manager: DeploymentLifecycleManager,
        task_queue: str,
    ):
        """Initialize the worker manager.

        Args:
            client: Connected Temporal client
            manager: Lifecycle manager the activities delegate to
            task_queue: Task queue name to poll
        """
        self.client = client
        self.manager = manager
        self.task_queue = task_queue
        self._worker: Optional[Worker] = None
        self._worker_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        """Check if the worker is running."""
        return self._worker_task is not None and not self._worker_task.done()

    async def start(self) -> None:
        """Start the Temporal worker in the background."""
        if self.is_running:
            logger.warning("Temporal worker already running")
            return

        self._worker = create_worker(self.client, self.manager, self.task_queue)

        logger.info("Starting Temporal worker", task_queue=self.task_queue)

        self._worker_task = asyncio.create_task(
            self._run_worker(),
            name="temporal-worker",
        )

    async def _run_worker(self) -> None:
        """Run the worker (background task)."""
        try:
            await self._worker.run()
        except asyncio.CancelledError:
            logger.info("Temporal worker cancelled")
        except Exception as e:
            logger.error("Temporal worker error", error=str(e))
            raise

    async def stop(self) -> None:
        """Stop the Temporal worker."""
        if not self.is_running:
            return

        logger.info("Stopping Temporal worker")

        if self._worker_task:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None

        self._worker = None
        logger.info("Temporal worker stopped")


async def run_standalone_worker() -> None:
    """Run the Temporal worker as a standalone process.

    Example:
        python -m deploy_lifecycle.services.temporal.worker
    """
    from deploy_lifecycle.core.container import container
    from deploy_lifecycle.core.logging import configure_logging

    settings = container.settings()
    configure_logging(settings)

    logger.info(
        "Starting standalone Temporal worker",
        server_address=settings.temporal_server_address,
        namespace=settings.temporal_namespace,
        task_queue=settings.temporal_task_queue,
    )

    database = container.database()
    await database.startup()
    try:
        client = await container.temporal_connection().get_client()
        worker = create_worker(client, container.lifecycle_manager(), settings.temporal_task_queue)
        logger.info("Worker running. Press Ctrl+C to stop.")
        await worker.run()
    finally:
        await database.shutdown()


def main() -> None:
    asyncio.run(run_standalone_worker())


if __name__ == "__main__":
    main()
