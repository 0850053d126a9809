"""Bulk job state store.

Counters are only ever changed with single-statement atomic increments, and
every batch is first recorded under its ``(job_id, batch_index)`` key so a
redelivered batch cannot be counted twice. Finalization is elected with a
conditional update on ``finalization_claimed_at``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import cast, func, select, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from compositor.database import async_session_maker
from compositor.models.bulk_job import BulkGenerationJob, BulkJobBatch, BulkJobStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchOutcome:
    """Result of processing one batch of rows."""

    success_count: int
    failure_count: int
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.success_count + self.failure_count


@dataclass(frozen=True)
class JobSnapshot:
    id: UUID
    entity_id: UUID
    status: BulkJobStatus
    total_rows: int
    total_batches: int
    processed_rows: int = 0
    success_count: int = 0
    failure_count: int = 0
    error_log: list[dict[str, Any]] = field(default_factory=list)
    template_id: UUID | None = None
    result_url: str | None = None
    notify_email: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def progress(self) -> int:
        if self.total_rows == 0:
            return 0
        return round(self.processed_rows / self.total_rows * 100)

    @property
    def is_terminal(self) -> bool:
        return self.status in (BulkJobStatus.COMPLETED, BulkJobStatus.FAILED)

    @classmethod
    def from_model(cls, job: BulkGenerationJob) -> "JobSnapshot":
        return cls(
            id=job.id,
            entity_id=job.entity_id,
            status=BulkJobStatus(job.status),
            total_rows=job.total_rows,
            total_batches=job.total_batches,
            processed_rows=job.processed_rows,
            success_count=job.success_count,
            failure_count=job.failure_count,
            error_log=list(job.error_log or []),
            template_id=job.template_id,
            result_url=job.result_url,
            notify_email=job.notify_email,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class JobStore(Protocol):
    async def create_job(
        self,
        entity_id: UUID,
        total_rows: int,
        total_batches: int,
        template_id: UUID | None = None,
        notify_email: str | None = None,
    ) -> JobSnapshot: ...

    async def get(self, job_id: UUID, entity_id: UUID | None = None) -> JobSnapshot | None: ...

    async def list_jobs(self, entity_id: UUID, limit: int = 20) -> list[JobSnapshot]: ...

    async def mark_processing(self, job_id: UUID) -> None: ...

    async def record_batch(
        self, job_id: UUID, batch_index: int, outcome: BatchOutcome
    ) -> JobSnapshot | None: ...

    async def claim_finalization(self, job_id: UUID) -> bool: ...

    async def complete(
        self,
        job_id: UUID,
        status: BulkJobStatus,
        result_url: str | None = None,
        result_key: str | None = None,
    ) -> None: ...


class SqlJobStore:
    """``JobStore`` backed by PostgreSQL."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] = async_session_maker) -> None:
        self.session_maker = session_maker

    async def create_job(
        self,
        entity_id: UUID,
        total_rows: int,
        total_batches: int,
        template_id: UUID | None = None,
        notify_email: str | None = None,
    ) -> JobSnapshot:
        async with self.session_maker() as db:
            job = BulkGenerationJob(
                entity_id=entity_id,
                template_id=template_id,
                status=BulkJobStatus.PENDING.value,
                total_rows=total_rows,
                total_batches=total_batches,
                processed_rows=0,
                success_count=0,
                failure_count=0,
                error_log=[],
                notify_email=notify_email,
            )
            db.add(job)
            await db.commit()
            await db.refresh(job)
            return JobSnapshot.from_model(job)

    async def get(self, job_id: UUID, entity_id: UUID | None = None) -> JobSnapshot | None:
        async with self.session_maker() as db:
            query = select(BulkGenerationJob).where(BulkGenerationJob.id == job_id)
            if entity_id is not None:
                query = query.where(BulkGenerationJob.entity_id == entity_id)
            job = (await db.execute(query)).scalar_one_or_none()
            return JobSnapshot.from_model(job) if job else None

    async def list_jobs(self, entity_id: UUID, limit: int = 20) -> list[JobSnapshot]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(BulkGenerationJob)
                .where(BulkGenerationJob.entity_id == entity_id)
                .order_by(BulkGenerationJob.created_at.desc())
                .limit(limit)
            )
            return [JobSnapshot.from_model(job) for job in result.scalars().all()]

    async def mark_processing(self, job_id: UUID) -> None:
        async with self.session_maker() as db:
            await db.execute(
                update(BulkGenerationJob)
                .where(BulkGenerationJob.id == job_id)
                .where(BulkGenerationJob.status == BulkJobStatus.PENDING.value)
                .values(status=BulkJobStatus.PROCESSING.value)
            )
            await db.commit()

    async def record_batch(
        self,
        job_id: UUID,
        batch_index: int,
        outcome: BatchOutcome,
    ) -> JobSnapshot | None:
        """Add a batch outcome to the job counters.

        Returns the updated job, or ``None`` if this batch was already counted.
        """
        async with self.session_maker() as db:
            inserted = await db.execute(
                pg_insert(BulkJobBatch)
                .values(
                    job_id=job_id,
                    batch_index=batch_index,
                    row_count=outcome.processed,
                    success_count=outcome.success_count,
                    failure_count=outcome.failure_count,
                )
                .on_conflict_do_nothing(index_elements=["job_id", "batch_index"])
                .returning(BulkJobBatch.batch_index)
            )
            if inserted.scalar_one_or_none() is None:
                await db.rollback()
                logger.info(f"Batch {batch_index} of job {job_id} already recorded, skipping")
                return None

            result = await db.execute(
                update(BulkGenerationJob)
                .where(BulkGenerationJob.id == job_id)
                .values(
                    processed_rows=BulkGenerationJob.processed_rows + outcome.processed,
                    success_count=BulkGenerationJob.success_count + outcome.success_count,
                    failure_count=BulkGenerationJob.failure_count + outcome.failure_count,
                    error_log=BulkGenerationJob.error_log.op("||")(cast(outcome.errors, JSONB)),
                    updated_at=func.now(),
                )
                .returning(BulkGenerationJob)
                .execution_options(synchronize_session=False)
            )
            job = result.scalar_one()
            await db.commit()
            return JobSnapshot.from_model(job)

    async def claim_finalization(self, job_id: UUID) -> bool:
        """Elect the caller as the job's single finalizer, if all rows are in."""
        async with self.session_maker() as db:
            result = await db.execute(
                update(BulkGenerationJob)
                .where(BulkGenerationJob.id == job_id)
                .where(BulkGenerationJob.finalization_claimed_at.is_(None))
                .where(BulkGenerationJob.processed_rows >= BulkGenerationJob.total_rows)
                .values(finalization_claimed_at=func.now())
                .returning(BulkGenerationJob.id)
            )
            claimed = result.scalar_one_or_none() is not None
            await db.commit()
            return claimed

    async def complete(
        self,
        job_id: UUID,
        status: BulkJobStatus,
        result_url: str | None = None,
        result_key: str | None = None,
    ) -> None:
        async with self.session_maker() as db:
            await db.execute(
                update(BulkGenerationJob)
                .where(BulkGenerationJob.id == job_id)
                .where(BulkGenerationJob.status.in_(
                    [BulkJobStatus.PENDING.value, BulkJobStatus.PROCESSING.value]
                ))
                .values(
                    status=status.value,
                    result_url=result_url,
                    result_key=result_key,
                    completed_at=func.now(),
                )
            )
            await db.commit()


# Singleton instance
job_store = SqlJobStore()
