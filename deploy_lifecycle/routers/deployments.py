"""Deployment lifecycle routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from deploy_lifecycle.core.config import Settings
from deploy_lifecycle.core.container import container
from deploy_lifecycle.core.logging import get_logger
from deploy_lifecycle.services.deployment import (
    BulkDeleteFailure,
    ConcurrencyConflict,
    DeploymentLifecycleError,
    DeploymentLifecycleManager,
    DeploymentNotFound,
    DeploymentStatus,
    EnvironmentId,
    IllegalTransition,
    StorageFailure,
    TaskStateUnavailable,
    TransitionSignal,
    WorkflowStartFailure,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/api/deployments", tags=["deployments"])

_ERROR_STATUS = (
    (DeploymentNotFound, status.HTTP_404_NOT_FOUND),
    (ConcurrencyConflict, status.HTTP_409_CONFLICT),
    (IllegalTransition, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (StorageFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
    (TaskStateUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


class CreateDeploymentRequest(BaseModel):
    account_id: str = Field(min_length=1)
    cluster: str = Field(min_length=1)
    environment_name: str = Field(min_length=1)
    environment_revision_id: str = Field(min_length=1)
    desired_task_count: Optional[int] = Field(default=None, ge=0)


class SignalRequest(BaseModel):
    signal: TransitionSignal
    summary: Optional[str] = None


def _error_response(e: DeploymentLifecycleError) -> JSONResponse:
    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, error_code in _ERROR_STATUS:
        if isinstance(e, error_type):
            code = error_code
            break
    content = {"success": False, **e.to_dict()}
    if isinstance(e, BulkDeleteFailure):
        content["result"] = e.result.to_dict()
    return JSONResponse(status_code=code, content=content)


def get_manager() -> DeploymentLifecycleManager:
    return container.lifecycle_manager()


def get_settings() -> Settings:
    return container.settings()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_deployment(
    request: CreateDeploymentRequest,
    manager: DeploymentLifecycleManager = Depends(get_manager)
):
    """Create a deployment and start its workflow execution."""
    try:
        environment_id = EnvironmentId(
            account_id=request.account_id,
            cluster=request.cluster,
            environment_name=request.environment_name,
        )
    except ValueError as e:
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                            content={"success": False, "error": "ValidationError", "message": str(e)})

    try:
        deployment = await manager.create_deployment(
            environment_id,
            request.environment_revision_id,
            desired_task_count=request.desired_task_count,
        )
    except WorkflowStartFailure as e:
        # Record exists and stays Pending; the sweep re-attempts the start
        logger.warning("Deployment accepted without a running workflow",
                       deployment_id=e.deployment_id, error=str(e))
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={
                "success": True,
                "workflow_started": False,
                "error": str(e),
                "deployment": e.deployment.to_dict() if e.deployment else None,
            },
        )
    except DeploymentLifecycleError as e:
        logger.error("Failed to create deployment", error=str(e))
        return _error_response(e)

    return {"success": True, "workflow_started": True, "deployment": deployment.to_dict()}


@router.get("")
async def list_deployments(
    status_filter: Optional[DeploymentStatus] = Query(default=None, alias="status"),
    manager: DeploymentLifecycleManager = Depends(get_manager)
):
    """List deployments, optionally filtered by status (?status=Pending)."""
    try:
        deployments = await manager.list_deployments(status_filter)
    except DeploymentLifecycleError as e:
        logger.error("Failed to list deployments", error=str(e))
        return _error_response(e)
    return {
        "success": True,
        "count": len(deployments),
        "deployments": [d.to_dict() for d in deployments],
    }


@router.post("/sweep")
async def sweep_pending(manager: DeploymentLifecycleManager = Depends(get_manager)):
    """Run one pending sweep now."""
    try:
        report = await manager.retry_pending()
    except DeploymentLifecycleError as e:
        logger.error("Pending sweep failed", error=str(e))
        return _error_response(e)
    return {"success": True, "report": report.to_dict()}


@router.delete("")
async def delete_all_deployments(
    manager: DeploymentLifecycleManager = Depends(get_manager),
    settings: Settings = Depends(get_settings)
):
    """Administrative bulk delete. Disabled unless admin_delete_enabled is set."""
    if not settings.admin_delete_enabled:
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN,
                            content={"success": False, "error": "Bulk delete is disabled"})
    try:
        result = await manager.delete_all_deployments()
    except DeploymentLifecycleError as e:
        logger.error("Bulk delete failed", error=str(e))
        return _error_response(e)
    return {"success": True, "result": result.to_dict()}


@router.get("/{deployment_id}")
async def get_deployment(
    deployment_id: str,
    manager: DeploymentLifecycleManager = Depends(get_manager)
):
    """Get a deployment by id."""
    try:
        deployment = await manager.get_deployment(deployment_id)
    except DeploymentLifecycleError as e:
        return _error_response(e)
    return {"success": True, "deployment": deployment.to_dict()}


@router.post("/{deployment_id}/signals")
async def apply_signal(
    deployment_id: str,
    request: SignalRequest,
    manager: DeploymentLifecycleManager = Depends(get_manager)
):
    """Apply a lifecycle signal by hand (operator override of a workflow step)."""
    try:
        outcome = await manager.apply_signal(deployment_id, request.signal, summary=request.summary)
    except DeploymentLifecycleError as e:
        logger.warning("Signal failed", deployment_id=deployment_id,
                       signal=request.signal.value, error=str(e))
        return _error_response(e)
    return {"success": True, "outcome": outcome.to_dict()}
