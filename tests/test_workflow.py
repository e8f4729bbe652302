"""Tests for the deployment workflow's step sequencing."""

import logging
import uuid

import pytest
from temporalio import activity, workflow
from temporalio.client import WorkflowFailureError
from temporalio.exceptions import ActivityError, ApplicationError
from temporalio.testing import WorkflowEnvironment
from temporalio.worker import Worker

from deploy_lifecycle.constants import CHECK_TASK_STATE_ACTIVITY, START_DEPLOYMENT_ACTIVITY
from deploy_lifecycle.services.temporal.workflow import (
    POLL_INTERVAL,
    STEP_RETRY_POLICY,
    DeploymentWorkflow,
)

TERMINAL = ("Completed", "Failed")


def outcome(status):
    return {"status": status, "terminal": status in TERMINAL}


def illegal_transition():
    return ApplicationError("Pending cannot take tasksComplete", {"deployment_id": "dep-1"},
                            type="IllegalTransition", non_retryable=True)


class ScriptedSteps:
    """Stands in for activity execution and timers inside ``DeploymentWorkflow.run``."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.sleeps = []

    async def execute_activity(self, name, arg, **kwargs):
        self.calls.append((name, arg, kwargs))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def sleep(self, duration):
        self.sleeps.append(duration)


@pytest.fixture
def steps(monkeypatch):
    def _script(*results):
        scripted = ScriptedSteps(*results)
        monkeypatch.setattr(workflow, "execute_activity", scripted.execute_activity)
        monkeypatch.setattr(workflow, "sleep", scripted.sleep)
        monkeypatch.setattr(workflow, "logger", logging.getLogger(__name__))
        return scripted
    return _script


class TestRunSequence:
    async def test_polls_until_terminal(self, steps):
        scripted = steps(outcome("InProgress"), outcome("InProgress"), outcome("InProgress"),
                         outcome("Completed"))

        final = await DeploymentWorkflow().run("dep-1")

        assert final == "Completed"
        names = [name for name, _, _ in scripted.calls]
        assert names == [START_DEPLOYMENT_ACTIVITY] + [CHECK_TASK_STATE_ACTIVITY] * 3
        assert all(arg == "dep-1" for _, arg, _ in scripted.calls)
        assert scripted.sleeps == [POLL_INTERVAL] * 3

    async def test_steps_use_the_retry_policy(self, steps):
        scripted = steps(outcome("InProgress"), outcome("Failed"))

        assert await DeploymentWorkflow().run("dep-1") == "Failed"

        for _, _, kwargs in scripted.calls:
            assert kwargs["retry_policy"] is STEP_RETRY_POLICY
        assert "IllegalTransition" in STEP_RETRY_POLICY.non_retryable_error_types

    async def test_already_finished_deployment_does_not_poll(self, steps):
        scripted = steps(outcome("Completed"))

        assert await DeploymentWorkflow().run("dep-1") == "Completed"
        assert len(scripted.calls) == 1
        assert scripted.sleeps == []

    async def test_illegal_transition_ends_the_run(self, steps):
        scripted = steps(outcome("InProgress"), illegal_transition(), outcome("Completed"))

        with pytest.raises(ApplicationError) as exc_info:
            await DeploymentWorkflow().run("dep-1")

        assert exc_info.value.type == "IllegalTransition"
        assert len(scripted.calls) == 2


@pytest.fixture
async def env():
    try:
        environment = await WorkflowEnvironment.start_time_skipping()
    except Exception as e:
        pytest.skip(f"Temporal test server unavailable: {e}")
    try:
        yield environment
    finally:
        await environment.shutdown()


def scripted_activities(check_results):
    calls = []

    @activity.defn(name=START_DEPLOYMENT_ACTIVITY)
    async def start_step(deployment_id: str) -> dict:
        calls.append(("start", deployment_id))
        return outcome("InProgress")

    @activity.defn(name=CHECK_TASK_STATE_ACTIVITY)
    async def check_step(deployment_id: str) -> dict:
        calls.append(("check", deployment_id))
        result = check_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    return [start_step, check_step], calls


class TestWorkflowExecution:
    async def _execute(self, env, activities):
        task_queue = f"deployments-{uuid.uuid4()}"
        async with Worker(env.client, task_queue=task_queue,
                          workflows=[DeploymentWorkflow], activities=activities):
            return await env.client.execute_workflow(
                DeploymentWorkflow.run, "dep-1",
                id=f"deployment-{uuid.uuid4()}", task_queue=task_queue,
            )

    async def test_completes_after_polls(self, env):
        activities, calls = scripted_activities(
            [outcome("InProgress"), outcome("InProgress"), outcome("Completed")]
        )

        final = await self._execute(env, activities)

        assert final == "Completed"
        assert [step for step, _ in calls] == ["start", "check", "check", "check"]

    async def test_illegal_transition_fails_execution(self, env):
        activities, calls = scripted_activities([illegal_transition()])

        with pytest.raises(WorkflowFailureError) as exc_info:
            await self._execute(env, activities)

        cause = exc_info.value.cause
        assert isinstance(cause, ActivityError)
        assert isinstance(cause.cause, ApplicationError)
        assert cause.cause.type == "IllegalTransition"
        # Non-retryable, so the check ran exactly once
        assert [step for step, _ in calls] == ["start", "check"]
