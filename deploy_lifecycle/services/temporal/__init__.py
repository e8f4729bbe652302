"""Temporal workflow engine integration.

Architecture:
- One DeploymentWorkflow execution per deployment, id derived from the deployment id
- The workflow only sequences steps; each step is an activity calling the lifecycle manager
- Activities are idempotent and may be re-delivered after timeouts
"""

from .client import TemporalConnection
from .trigger import TemporalWorkflowTrigger, execution_name
from .activities import DeploymentActivities
from .workflow import DeploymentWorkflow
from .worker import TemporalWorkerManager, create_worker

__all__ = [
    "TemporalConnection",
    "TemporalWorkflowTrigger",
    "execution_name",
    "DeploymentActivities",
    "DeploymentWorkflow",
    "TemporalWorkerManager",
    "create_worker",
]
