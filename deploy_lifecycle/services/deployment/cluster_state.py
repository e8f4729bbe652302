"""Task state queries against the cluster state service.

The lifecycle only needs one question answered: which tasks did this
deployment start on this cluster, and how are they doing.
"""

from typing import Any, Protocol

import httpx

from deploy_lifecycle.core.logging import get_logger
from .exceptions import TaskStateUnavailable
from .models import TaskStateSnapshot, TaskSummary

logger = get_logger(__name__)


class TaskStateSource(Protocol):
    """Narrow read-only view of the container orchestration API."""

    async def list_tasks(self, cluster: str, started_by: str) -> TaskStateSnapshot:
        ...


class ClusterStateClient:
    """HTTP client for the cluster state service.

    ``GET {base_url}/v1/tasks?cluster=<cluster>&startedBy=<deployment id>``
    returns ``{"items": [task, ...], "failures": [{"reason": ...}, ...]}``.
    """

    def __init__(self, base_url: str, timeout: float = 10.0,
                 transport: httpx.AsyncBaseTransport = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def list_tasks(self, cluster: str, started_by: str) -> TaskStateSnapshot:
        url = f"{self.base_url}/v1/tasks"
        params = {"cluster": cluster, "startedBy": started_by}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(url, params=params)
                response.raise_for_status()
                snapshot = parse_task_listing(response.json())
            except httpx.HTTPStatusError as e:
                logger.error("Cluster state query rejected", cluster=cluster, deployment_id=started_by,
                             status_code=e.response.status_code)
                raise TaskStateUnavailable(
                    f"Cluster state service returned HTTP {e.response.status_code}",
                    deployment_id=started_by, operation="list_tasks",
                ) from e
            except (httpx.HTTPError, ValueError) as e:
                logger.error("Cluster state query failed", cluster=cluster, deployment_id=started_by,
                             error=str(e))
                raise TaskStateUnavailable(
                    f"Could not query tasks on cluster {cluster}: {e}",
                    deployment_id=started_by, operation="list_tasks",
                ) from e

        logger.debug("Cluster tasks fetched", cluster=cluster, deployment_id=started_by,
                     tasks=len(snapshot.tasks), failures=len(snapshot.failures))
        return snapshot


def parse_task_listing(payload: Any) -> TaskStateSnapshot:
    """Build a snapshot from a decoded response body.

    Raises ValueError when the body is not ``{"items": [{...}], "failures": [...]}``.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")

    items = payload.get("items") or []
    failures = payload.get("failures") or []
    if not isinstance(items, list) or not isinstance(failures, list):
        raise ValueError("'items' and 'failures' must be lists")
    if not all(isinstance(item, dict) for item in items):
        raise ValueError("every entry in 'items' must be an object")

    return TaskStateSnapshot(
        tasks=[TaskSummary.from_dict(item) for item in items],
        failures=[f.get("reason", "unknown") if isinstance(f, dict) else str(f) for f in failures],
    )
