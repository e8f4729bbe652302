"""Pure mapping between ``DeploymentRecord`` rows and ``Deployment`` objects."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from deploy_lifecycle.models.database import DeploymentRecord
from .models import Deployment, DeploymentStatus, DeploymentUpdate, EnvironmentId


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_record(deployment: Deployment) -> DeploymentRecord:
    """Build the row for a new deployment. Timestamps and version are left to the store."""
    return DeploymentRecord(
        deployment_id=deployment.deployment_id,
        status=deployment.status.value,
        status_reason=deployment.status_reason,
        cluster_name=deployment.environment_id.cluster,
        account_id_cluster_environment_name=deployment.environment_id.account_id_cluster_environment_name(),
        environment_revision_id=deployment.environment_revision_id,
        desired_task_count=deployment.desired_task_count,
        record_version=0,
    )


def from_record(record: DeploymentRecord) -> Deployment:
    return Deployment(
        deployment_id=record.deployment_id,
        environment_id=EnvironmentId.from_account_id_cluster_environment_name(
            record.account_id_cluster_environment_name
        ),
        environment_revision_id=record.environment_revision_id,
        status=DeploymentStatus(record.status),
        status_reason=record.status_reason,
        desired_task_count=record.desired_task_count,
        record_version=record.record_version,
        created_at=_as_utc(record.created_at),
        last_updated_at=_as_utc(record.last_updated_at),
    )


def merge_update(update: DeploymentUpdate, record: DeploymentRecord,
                 now: Optional[datetime] = None) -> Dict[str, Any]:
    """Column values to write when applying ``update`` over ``record``.

    Only the fields the caller set are copied; everything else keeps the
    stored value. The version is bumped relative to the stored record.
    """
    values: Dict[str, Any] = {}
    for name, value in update.changed_fields().items():
        values[name] = value.value if isinstance(value, DeploymentStatus) else value
    values["record_version"] = record.record_version + 1
    values["last_updated_at"] = now or datetime.now(timezone.utc)
    return values
