"""Deployment Lifecycle Manager.

Ties the record store, state machine, workflow trigger and task poller
together. Built from explicit constructor arguments so tests can hand in
in-memory fakes.

Control flow:
    create_deployment -> store.create (Pending) -> trigger.start_workflow
    workflow engine   -> start_deployment   (start signal, Pending -> InProgress)
                      -> check_task_state   (poll, classify, apply) until terminal
    sweep             -> retry_pending      (re-start executions for Pending rows and
                                           InProgress rows whose execution failed)
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from deploy_lifecycle.core.config import Settings
from deploy_lifecycle.core.logging import deployment_context, get_logger
from .exceptions import (
    ConcurrencyConflict,
    DeploymentLifecycleError,
    DeploymentNotFound,
    IllegalTransition,
    WorkflowStartFailure,
)
from .models import (
    BulkDeleteResult,
    Deployment,
    DeploymentStatus,
    DeploymentUpdate,
    EnvironmentId,
    TransitionSignal,
    WorkflowStartResult,
)
from .poller import TaskStatePoller
from .state_machine import TransitionResult, transition
from .store import DeploymentStoreProtocol

logger = get_logger(__name__)


class WorkflowTriggerProtocol(Protocol):
    """Starts one workflow execution per deployment."""

    async def start_workflow(self, deployment_id: str) -> WorkflowStartResult:
        ...


@dataclass
class StepOutcome:
    """What a workflow step did to a deployment."""
    deployment: Deployment
    result: TransitionResult
    summary: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.deployment.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment.deployment_id,
            "signal": self.result.signal.value,
            "status": self.deployment.status.value,
            "changed": self.result.changed,
            "rejected": self.result.rejected,
            "reason": self.result.reason.value if self.result.reason else None,
            "terminal": self.terminal,
            "summary": self.summary,
            "record_version": self.deployment.record_version,
        }


@dataclass
class SweepReport:
    """Aggregated result of one sweep."""
    examined: int = 0
    started: List[str] = field(default_factory=list)
    resumed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "examined": self.examined,
            "started": list(self.started),
            "resumed": list(self.resumed),
            "skipped": list(self.skipped),
            "failed": dict(self.failed),
        }


class DeploymentLifecycleManager:
    """Owns the deployment lifecycle on behalf of API callers and the workflow engine."""

    def __init__(
        self,
        store: DeploymentStoreProtocol,
        trigger: WorkflowTriggerProtocol,
        poller: TaskStatePoller,
        settings: Settings,
    ):
        self.store = store
        self.trigger = trigger
        self.poller = poller
        self.conflict_max_retries = settings.conflict_max_retries

    # =========================================================================
    # API CALLERS
    # =========================================================================

    async def create_deployment(
        self,
        environment_id: EnvironmentId,
        environment_revision_id: str,
        desired_task_count: Optional[int] = None,
    ) -> Deployment:
        """Create a Pending deployment and start its workflow execution.

        If the engine refuses the start the record is left Pending (the
        pending sweep retries it) and WorkflowStartFailure is raised with the
        deployment attached.
        """
        deployment = Deployment(
            deployment_id=str(uuid.uuid4()),
            environment_id=environment_id,
            environment_revision_id=environment_revision_id,
            desired_task_count=desired_task_count,
        )
        created = await self.store.create(deployment)

        try:
            execution = await self.trigger.start_workflow(created.deployment_id)
        except WorkflowStartFailure as e:
            logger.error("Workflow start failed, deployment left Pending for retry",
                         deployment_id=created.deployment_id, error=str(e))
            e.deployment = created
            raise

        logger.info("Deployment workflow started", deployment_id=created.deployment_id,
                    execution_name=execution.execution_name)
        return created

    async def get_deployment(self, deployment_id: str) -> Deployment:
        return await self.store.get_by_id(deployment_id)

    async def list_deployments(self, status: Optional[DeploymentStatus] = None) -> List[Deployment]:
        if status is None:
            return await self.store.list_all()
        return await self.store.list_by_status(status)

    async def delete_all_deployments(self) -> BulkDeleteResult:
        logger.warning("Deleting all deployments")
        return await self.store.delete_all()

    # =========================================================================
    # WORKFLOW STEPS
    # =========================================================================

    async def start_deployment(self, deployment_id: str) -> StepOutcome:
        """First workflow step: Pending -> InProgress."""
        with deployment_context(deployment_id, "start_deployment"):
            return await self._apply_signal(deployment_id, TransitionSignal.START,
                                            summary="Deployment started")

    async def check_task_state(self, deployment_id: str) -> StepOutcome:
        """Polling workflow step: classify task health, then apply the signal."""
        with deployment_context(deployment_id, "check_task_state"):
            report = await self.poller.poll_task_state(deployment_id)
            return await self._apply_signal(deployment_id, report.signal, summary=report.summary)

    async def apply_signal(
        self,
        deployment_id: str,
        signal: TransitionSignal,
        summary: Optional[str] = None,
    ) -> StepOutcome:
        """Validate ``signal`` against the stored status and persist the result.

        Rejections that mean "not yet" or "already finished" come back as an
        outcome without touching storage. An illegal transition is a defect
        and raises IllegalTransition. A lost optimistic-concurrency race is
        retried against a fresh read, since the winner may already have done
        the work.
        """
        with deployment_context(deployment_id, "apply_signal"):
            return await self._apply_signal(deployment_id, signal, summary)

    async def _apply_signal(
        self,
        deployment_id: str,
        signal: TransitionSignal,
        summary: Optional[str],
    ) -> StepOutcome:
        attempt = 0
        while True:
            current = await self.store.get_by_id(deployment_id)
            result = transition(current.status, signal)

            if result.is_defect:
                logger.error("Illegal deployment transition",
                             current_status=current.status.value, signal=signal.value)
                raise IllegalTransition(deployment_id, current.status.value, signal.value)

            if result.rejected:
                logger.info("Signal rejected",
                            current_status=current.status.value, signal=signal.value,
                            reason=result.reason.value, already_applied=result.already_applied)
                return StepOutcome(current, result, summary)

            if not result.changed:
                return StepOutcome(current, result, summary)

            try:
                updated = await self.store.update(DeploymentUpdate(
                    deployment_id=deployment_id,
                    record_version=current.record_version,
                    status=result.new_status,
                    status_reason=summary,
                ))
            except ConcurrencyConflict:
                attempt += 1
                if attempt > self.conflict_max_retries:
                    logger.error("Giving up after concurrent modifications",
                                 signal=signal.value, attempts=attempt)
                    raise
                logger.warning("Concurrent modification, reloading",
                               signal=signal.value, attempt=attempt)
                continue

            logger.info("Deployment transitioned",
                        from_status=current.status.value, to_status=updated.status.value,
                        signal=signal.value, record_version=updated.record_version)
            return StepOutcome(updated, result, summary)

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def retry_pending(self) -> SweepReport:
        """Re-attempt workflow starts for deployments no execution is driving.

        Pending rows never got an execution. InProgress rows may have lost
        theirs when its activity retries ran out; the reuse policy lets a
        failed execution be started again while a live one is refused as
        already started. The status index may be stale, so each candidate is
        re-read before acting. Per-deployment failures are collected in the
        report.
        """
        started_at = time.monotonic()
        report = SweepReport()

        for candidate in await self.store.list_by_status(DeploymentStatus.PENDING):
            await self._restart(candidate.deployment_id, DeploymentStatus.PENDING, report)

        for candidate in await self.store.list_by_status(DeploymentStatus.IN_PROGRESS):
            await self._restart(candidate.deployment_id, DeploymentStatus.IN_PROGRESS, report)

        if report.failed:
            logger.warning("Sweep finished with failures", failed=len(report.failed),
                           started=len(report.started), resumed=len(report.resumed))
        logger.info("Sweep completed", operation="retry_pending", examined=report.examined,
                    started=len(report.started), resumed=len(report.resumed),
                    elapsed_seconds=round(time.monotonic() - started_at, 4))
        return report

    async def _restart(self, deployment_id: str, expected: DeploymentStatus,
                       report: SweepReport) -> None:
        report.examined += 1
        with deployment_context(deployment_id, "retry_pending"):
            try:
                current = await self.store.get_by_id(deployment_id)
                if current.status is not expected:
                    report.skipped.append(deployment_id)
                    return
                execution = await self.trigger.start_workflow(deployment_id)
            except DeploymentNotFound:
                report.skipped.append(deployment_id)
                return
            except DeploymentLifecycleError as e:
                report.failed[deployment_id] = str(e)
                return

            if expected is DeploymentStatus.PENDING:
                report.started.append(deployment_id)
            elif execution.already_started:
                report.skipped.append(deployment_id)
            else:
                logger.warning("Restarted workflow for in-progress deployment",
                               execution_name=execution.execution_name)
                report.resumed.append(deployment_id)
