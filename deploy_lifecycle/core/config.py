"""Environment-driven configuration with Pydantic v2."""

from typing import Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3020, ge=1024, le=65535)
    debug: bool = Field(default=False)

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/deployments.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=20, ge=5, le=100)
    database_max_overflow: int = Field(default=30, ge=10, le=100)

    # Storage retries (transient transport errors only)
    storage_max_attempts: int = Field(default=3, ge=1, le=10)
    storage_retry_delay: float = Field(default=0.2, ge=0.0, le=10.0)
    storage_retry_max_delay: float = Field(default=2.0, ge=0.0, le=60.0)

    # Optimistic concurrency: reload-and-retry budget for status writes
    conflict_max_retries: int = Field(default=3, ge=0, le=10)

    # Temporal workflow engine
    temporal_enabled: bool = Field(default=True)
    temporal_server_address: str = Field(default="localhost:7233")
    temporal_namespace: str = Field(default="default")
    temporal_task_queue: str = Field(default="deployment-lifecycle")
    temporal_workflow_type: str = Field(default="DeploymentWorkflow")
    execution_name_prefix: str = Field(default="deployment-")

    # Deployments still not healthy after this long are failed
    deployment_timeout_seconds: int = Field(default=1800, ge=60)

    # Cluster state service (task health queries)
    cluster_state_url: str = Field(default="http://localhost:3000")
    cluster_state_timeout: float = Field(default=10.0, ge=1.0, le=120.0)

    # Pending deployment sweep
    pending_sweep_enabled: bool = Field(default=True)
    pending_sweep_interval_seconds: int = Field(default=10, ge=1)

    # Administrative bulk delete (test/reset environments only)
    admin_delete_enabled: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite") and ":memory:" not in v:
            if ":///" in v:
                db_path = v.split("///")[1]
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
