"""Centralized constants for task states and workflow step names.

Single source of truth for the strings exchanged with the cluster state
service and the workflow engine.
"""

from typing import FrozenSet

# =============================================================================
# CLUSTER TASK STATES
# =============================================================================

TASK_STATUS_RUNNING = "RUNNING"

# Tasks on their way up
TASK_STARTING_STATUSES: FrozenSet[str] = frozenset([
    'PENDING',
    'PROVISIONING',
    'ACTIVATING',
])

# Tasks on their way down or gone
TASK_STOPPED_STATUSES: FrozenSet[str] = frozenset([
    'DEACTIVATING',
    'STOPPING',
    'DEPROVISIONING',
    'STOPPED',
])

# =============================================================================
# WORKFLOW STEPS
# =============================================================================

START_DEPLOYMENT_ACTIVITY = "start_deployment_activity"
CHECK_TASK_STATE_ACTIVITY = "check_task_state_activity"

PENDING_SWEEP_JOB_ID = "pending-deployment-sweep"
