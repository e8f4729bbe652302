"""
Deployment lifecycle service.

FastAPI application hosting the lifecycle API, the in-process Temporal worker
and the pending deployment sweep.
"""

from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from deploy_lifecycle.core.container import container
from deploy_lifecycle.core.health import get_health_status, set_startup_time
from deploy_lifecycle.core.logging import configure_logging, get_logger
from deploy_lifecycle.routers import deployments
from deploy_lifecycle.services.scheduler import (
    is_sweep_scheduled,
    register_pending_sweep,
    shutdown_scheduler,
    start_scheduler,
)
from deploy_lifecycle.services.temporal.worker import TemporalWorkerManager

configure_logging(container.settings())
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info("Starting deployment lifecycle service")
    set_startup_time()
    settings = container.settings()

    await container.database().startup()
    manager = container.lifecycle_manager()

    worker_manager = None
    if settings.temporal_enabled:
        try:
            client = await container.temporal_connection().get_client()
        except Exception as e:
            # API stays up; creates land in Pending until the engine is reachable
            logger.error("Temporal unavailable, workflows will not start", error=str(e))
        else:
            worker_manager = TemporalWorkerManager(client, manager, settings.temporal_task_queue)
            await worker_manager.start()

    if settings.pending_sweep_enabled:
        register_pending_sweep(manager, settings.pending_sweep_interval_seconds)
        start_scheduler()

    logger.info("Services started successfully")
    yield

    # Shutdown
    shutdown_scheduler()
    if worker_manager is not None:
        await worker_manager.stop()
    container.temporal_connection().close()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Deployment Lifecycle Service",
    version="1.0.0",
    description="Tracks deployments from creation to a terminal status",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {type(e).__name__}: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )


app.add_middleware(CatchAllExceptionsMiddleware)

# Include routers
app.include_router(deployments.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    settings = container.settings()
    health = await get_health_status(
        container.database(),
        container.temporal_connection(),
        settings,
        sweep_running=is_sweep_scheduled(),
    )
    return {
        **health,
        "service": "deployment-lifecycle",
        "version": "1.0.0",
        "environment": "development" if settings.debug else "production",
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    settings = container.settings()
    logger.info("Starting deployment lifecycle service",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "deploy_lifecycle.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db"] if settings.debug else None,
        workers=1
    )
