"""SQLModel database models and tables."""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, Column, DateTime
from sqlalchemy import Index, func

DEPLOYMENT_STATUS_INDEX_NAME = "ix_deployments_status"


class DeploymentRecord(SQLModel, table=True):
    """Persisted deployment row.

    Primary key is the deployment id. Status lives in its own secondary index
    because it changes on every transition while the id never does.
    """

    __tablename__ = "deployments"
    __table_args__ = (
        Index(DEPLOYMENT_STATUS_INDEX_NAME, "status", "created_at"),
    )

    deployment_id: str = Field(primary_key=True, max_length=255)
    status: str = Field(max_length=32)
    status_reason: Optional[str] = Field(default=None, max_length=2000)
    cluster_name: str = Field(max_length=255)
    # "<account>/<cluster>/<environment>" composite reference
    account_id_cluster_environment_name: str = Field(index=True, max_length=767)
    environment_revision_id: str = Field(max_length=255)
    desired_task_count: Optional[int] = Field(default=None)
    record_version: int = Field(default=0)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    )
    last_updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    )
