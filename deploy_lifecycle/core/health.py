"""Health check utilities for daemon monitoring.

Provides uptime tracking and the health status served by /health.
"""
import time
from typing import Dict, Any, TYPE_CHECKING

import psutil

if TYPE_CHECKING:
    from deploy_lifecycle.core.config import Settings
    from deploy_lifecycle.core.database import Database
    from deploy_lifecycle.services.temporal.client import TemporalConnection

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


def get_memory_mb() -> float:
    """Get current process memory usage in MB."""
    return psutil.Process().memory_info().rss / (1024 * 1024)


async def get_health_status(
    database: "Database",
    temporal: "TemporalConnection",
    settings: "Settings",
    sweep_running: bool = False,
) -> Dict[str, Any]:
    """Get health status for the /health endpoint.

    The service is "healthy" when the record store answers and, if the
    workflow engine is enabled, the engine client is connected.
    """
    db_healthy = database.is_started and await database.ping()
    temporal_healthy = temporal.is_connected if settings.temporal_enabled else None

    healthy = db_healthy and temporal_healthy is not False
    return {
        "status": "healthy" if healthy else "degraded",
        "uptime_seconds": round(get_uptime(), 1),
        "memory_mb": round(get_memory_mb(), 1),
        "checks": {
            "database": db_healthy,
            "temporal": temporal_healthy,
        },
        "temporal_error": temporal.last_error if temporal_healthy is False else None,
        "features": {
            "temporal": settings.temporal_enabled,
            "pending_sweep": settings.pending_sweep_enabled,
            "pending_sweep_running": sweep_running,
            "admin_delete": settings.admin_delete_enabled,
        },
    }
