"""Dependency injection container for the application.

Every collaborator is built from explicit constructor arguments, so any of
them can be overridden with a fake (``container.deployment_store.override``).
"""

from dependency_injector import containers, providers

from deploy_lifecycle.core.config import Settings
from deploy_lifecycle.core.database import Database
from deploy_lifecycle.services.deployment.cluster_state import ClusterStateClient
from deploy_lifecycle.services.deployment.manager import DeploymentLifecycleManager
from deploy_lifecycle.services.deployment.poller import TaskStatePoller
from deploy_lifecycle.services.deployment.store import DeploymentStore
from deploy_lifecycle.services.temporal.client import TemporalConnection
from deploy_lifecycle.services.temporal.trigger import TemporalWorkflowTrigger


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    settings = providers.Singleton(
        Settings,
    )

    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Record store (the only writer of deployment rows)
    deployment_store = providers.Singleton(
        DeploymentStore,
        database=database,
        settings=settings
    )

    # Workflow engine
    temporal_connection = providers.Singleton(
        TemporalConnection,
        server_address=settings.provided.temporal_server_address,
        namespace=settings.provided.temporal_namespace,
    )

    workflow_trigger = providers.Singleton(
        TemporalWorkflowTrigger,
        connection=temporal_connection,
        settings=settings
    )

    # Orchestration API (task health)
    task_state_source = providers.Singleton(
        ClusterStateClient,
        base_url=settings.provided.cluster_state_url,
        timeout=settings.provided.cluster_state_timeout,
    )

    task_state_poller = providers.Singleton(
        TaskStatePoller,
        store=deployment_store,
        task_source=task_state_source,
        deployment_timeout_seconds=settings.provided.deployment_timeout_seconds,
    )

    lifecycle_manager = providers.Singleton(
        DeploymentLifecycleManager,
        store=deployment_store,
        trigger=workflow_trigger,
        poller=task_state_poller,
        settings=settings
    )


# Global container instance
container = Container()
