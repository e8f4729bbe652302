"""Deployment record store backed by SQLModel / async SQLAlchemy.

Only this module writes deployment rows. Every status write is a conditional
update on ``record_version`` so overlapping workflow polls cannot clobber each
other; the loser gets ``ConcurrencyConflict`` and must reload.
"""

import asyncio
from dataclasses import dataclass
from functools import partial
from typing import Awaitable, Callable, List, Optional, Protocol, TypeVar

from sqlalchemy import delete as sa_delete, update as sa_update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlmodel import select

from deploy_lifecycle.core.config import Settings
from deploy_lifecycle.core.database import Database
from deploy_lifecycle.core.logging import get_logger
from deploy_lifecycle.models.database import DeploymentRecord
from .exceptions import (
    BulkDeleteFailure,
    ConcurrencyConflict,
    DeploymentNotFound,
    StorageFailure,
)
from .models import BulkDeleteResult, Deployment, DeploymentStatus, DeploymentUpdate
from .translator import from_record, merge_update, to_record

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, asyncio.TimeoutError, ConnectionError)


class DeploymentStoreProtocol(Protocol):
    """Contract shared by the SQL store and in-memory fakes."""

    async def create(self, deployment: Deployment) -> Deployment:
        ...

    async def update(self, update: DeploymentUpdate) -> Deployment:
        ...

    async def get_by_id(self, deployment_id: str) -> Deployment:
        ...

    async def list_by_status(self, status: DeploymentStatus) -> List[Deployment]:
        ...

    async def list_all(self) -> List[Deployment]:
        ...

    async def delete_all(self) -> BulkDeleteResult:
        ...


@dataclass
class StorageRetryPolicy:
    """Exponential backoff for transient storage errors.

    Delay formula: min(initial_delay * (backoff_multiplier ^ attempt), max_delay)
    """
    max_attempts: int = 3
    initial_delay: float = 0.2
    max_delay: float = 2.0
    backoff_multiplier: float = 2.0

    def calculate_delay(self, attempt: int) -> float:
        delay = self.initial_delay * (self.backoff_multiplier ** attempt)
        return min(delay, self.max_delay)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageRetryPolicy":
        return cls(
            max_attempts=settings.storage_max_attempts,
            initial_delay=settings.storage_retry_delay,
            max_delay=settings.storage_retry_max_delay,
        )


class DeploymentStore:
    """Persists deployments; status is queried through a secondary index."""

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.retry_policy = StorageRetryPolicy.from_settings(settings)

    async def _with_retry(self, operation: str, deployment_id: Optional[str],
                          action: Callable[[], Awaitable[T]]) -> T:
        """Run ``action``, retrying transient errors and mapping the rest to StorageFailure."""
        if not self.database.is_started:
            raise StorageFailure("Deployment store is not initialized",
                                 deployment_id=deployment_id, operation=operation)

        attempt = 0
        while True:
            try:
                return await action()
            except IntegrityError as e:
                logger.error("Store rejected write", operation=operation,
                             deployment_id=deployment_id, error=str(e.orig))
                raise StorageFailure(
                    f"Store rejected {operation} for deployment {deployment_id}",
                    deployment_id=deployment_id, operation=operation,
                ) from e
            except TRANSIENT_ERRORS as e:
                attempt += 1
                if attempt >= self.retry_policy.max_attempts:
                    logger.error("Storage operation failed after retries", operation=operation,
                                 deployment_id=deployment_id, attempts=attempt, error=str(e))
                    raise StorageFailure(
                        f"Could not {operation} deployment {deployment_id} after {attempt} attempts",
                        deployment_id=deployment_id, operation=operation,
                    ) from e
                delay = self.retry_policy.calculate_delay(attempt - 1)
                logger.warning("Transient storage error, retrying", operation=operation,
                               deployment_id=deployment_id, attempt=attempt, delay=delay, error=str(e))
                await asyncio.sleep(delay)
            except SQLAlchemyError as e:
                logger.error("Storage operation failed", operation=operation,
                             deployment_id=deployment_id, error=str(e))
                raise StorageFailure(
                    f"Could not {operation} deployment {deployment_id}",
                    deployment_id=deployment_id, operation=operation,
                ) from e

    # ============================================================================
    # Writes
    # ============================================================================

    async def create(self, deployment: Deployment) -> Deployment:
        """Persist a new deployment at version 0."""
        async def _create() -> Deployment:
            record = to_record(deployment)
            async with self.database.get_session() as session:
                session.add(record)
                await session.commit()
                await session.refresh(record)
                return from_record(record)

        created = await self._with_retry("create", deployment.deployment_id, _create)
        logger.info("Deployment created", deployment_id=created.deployment_id,
                    status=created.status.value, cluster=created.cluster_identifier)
        return created

    async def update(self, update: DeploymentUpdate) -> Deployment:
        """Merge the caller's changed fields onto the stored record.

        Raises:
            DeploymentNotFound: no record for the id
            ConcurrencyConflict: ``update.record_version`` is stale, or another
                writer won the race between load and write
            StorageFailure: transport or service error
        """
        async def _update() -> Deployment:
            async with self.database.get_session() as session:
                record = await session.get(DeploymentRecord, update.deployment_id)
                if record is None:
                    raise DeploymentNotFound(update.deployment_id, operation="update")
                if record.record_version != update.record_version:
                    raise ConcurrencyConflict(update.deployment_id, update.record_version,
                                              record.record_version)

                stmt = (
                    sa_update(DeploymentRecord)
                    .where(DeploymentRecord.deployment_id == update.deployment_id)
                    .where(DeploymentRecord.record_version == update.record_version)
                    .values(**merge_update(update, record))
                )
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    await session.rollback()
                    raise ConcurrencyConflict(update.deployment_id, update.record_version)

                await session.commit()
                await session.refresh(record)
                return from_record(record)

        updated = await self._with_retry("update", update.deployment_id, _update)
        logger.debug("Deployment updated", deployment_id=updated.deployment_id,
                     status=updated.status.value, record_version=updated.record_version)
        return updated

    async def _delete_one(self, deployment_id: str) -> int:
        async with self.database.get_session() as session:
            result = await session.execute(
                sa_delete(DeploymentRecord).where(DeploymentRecord.deployment_id == deployment_id)
            )
            await session.commit()
            return result.rowcount

    async def delete_all(self) -> BulkDeleteResult:
        """Delete every deployment, one row at a time.

        Not atomic. Failures are collected and raised once as BulkDeleteFailure
        with the partial result attached.
        """
        async def _scan_ids() -> List[str]:
            async with self.database.get_session() as session:
                result = await session.execute(select(DeploymentRecord.deployment_id))
                return list(result.scalars().all())

        deployment_ids = await self._with_retry("delete_all", None, _scan_ids)

        outcome = BulkDeleteResult()
        for deployment_id in deployment_ids:
            try:
                removed = await self._with_retry("delete", deployment_id,
                                                 partial(self._delete_one, deployment_id))
                outcome.deleted += removed
            except StorageFailure:
                outcome.failed_ids.append(deployment_id)

        if outcome.partial:
            logger.error("Bulk delete partially applied", deleted=outcome.deleted,
                         failed=len(outcome.failed_ids))
            raise BulkDeleteFailure(outcome)

        logger.info("Bulk delete completed", deleted=outcome.deleted)
        return outcome

    # ============================================================================
    # Reads
    # ============================================================================

    async def get_by_id(self, deployment_id: str) -> Deployment:
        async def _get() -> Deployment:
            async with self.database.get_session() as session:
                record = await session.get(DeploymentRecord, deployment_id)
                if record is None:
                    raise DeploymentNotFound(deployment_id, operation="get_by_id")
                return from_record(record)

        return await self._with_retry("get_by_id", deployment_id, _get)

    async def list_by_status(self, status: DeploymentStatus) -> List[Deployment]:
        """All deployments currently in ``status``.

        Served from the status index. Callers must re-check with get_by_id
        before acting, the index may lag the latest write.
        """
        async def _query() -> List[Deployment]:
            async with self.database.get_session() as session:
                stmt = (
                    select(DeploymentRecord)
                    .where(DeploymentRecord.status == status.value)
                    .order_by(DeploymentRecord.created_at)
                )
                result = await session.execute(stmt)
                return [from_record(r) for r in result.scalars().all()]

        return await self._with_retry("list_by_status", None, _query)

    async def list_all(self) -> List[Deployment]:
        """Full scan across the status index. Reconciliation and audit only."""
        async def _scan() -> List[Deployment]:
            async with self.database.get_session() as session:
                stmt = select(DeploymentRecord).order_by(
                    DeploymentRecord.status, DeploymentRecord.created_at
                )
                result = await session.execute(stmt)
                return [from_record(r) for r in result.scalars().all()]

        return await self._with_retry("list_all", None, _scan)
