"""Bulk generation: fan a table of rows out into batches and aggregate results.

A job is created with all counters at zero, its rows are split into batches
of ``bulk_batch_size`` and each batch is enqueued on arq under a stable job
id. Rows inside a batch run concurrently and fail independently. Each batch
outcome is added to the job with an idempotent atomic increment; the batch
that completes the job wins a conditional claim and finalizes it (zip,
terminal status, notification) exactly once.

When Redis cannot be reached the batch runs as a local background task
instead. That mode is at-most-once: a batch in flight when the process stops
is lost and its job never completes.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol
from uuid import UUID

from arq import ArqRedis, create_pool
from redis.exceptions import RedisError
from sqlalchemy import select

from compositor.config import get_settings
from compositor.core.errors import EmptyInputError, MissingColumnsError, TemplateValidationError
from compositor.core.ingest import SUPPLIER_EMAIL_COLUMNS, SUPPLIER_NAME_COLUMNS, first_present
from compositor.core.validation import ensure_unique_labels, missing_required_headers
from compositor.database import async_session_maker
from compositor.models.bulk_job import BulkJobStatus
from compositor.models.entity import Entity
from compositor.models.invoice_template import InvoiceTemplate
from compositor.schemas.template import TemplateDocument
from compositor.services.documents import DocumentService, JobArchive, document_service
from compositor.services.invoices import invoice_service
from compositor.services.job_store import BatchOutcome, JobSnapshot, JobStore, job_store
from compositor.services.notifications import send_job_notification
from compositor.services.standard_invoice import (
    IssuerInfo,
    invoice_data_from_row,
    render_standard_invoice,
)
from compositor.services.suppliers import supplier_service
from compositor.workers.settings import redis_settings

settings = get_settings()
logger = logging.getLogger(__name__)

BATCH_TASK = "process_bulk_batch"


# ── Batch payload ──


@dataclass(frozen=True)
class BatchPayload:
    job_id: UUID
    entity_id: UUID
    batch_index: int
    start_row: int  # 1-based number of the first row in the batch
    rows: list[dict[str, Any]]
    template_id: UUID | None = None
    standard: bool = False

    @property
    def dedupe_key(self) -> str:
        return f"bulk:{self.job_id}:{self.batch_index}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": str(self.job_id),
            "entity_id": str(self.entity_id),
            "batch_index": self.batch_index,
            "start_row": self.start_row,
            "rows": self.rows,
            "template_id": str(self.template_id) if self.template_id else None,
            "standard": self.standard,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BatchPayload":
        return cls(
            job_id=UUID(data["job_id"]),
            entity_id=UUID(data["entity_id"]),
            batch_index=int(data["batch_index"]),
            start_row=int(data["start_row"]),
            rows=list(data["rows"]),
            template_id=UUID(data["template_id"]) if data.get("template_id") else None,
            standard=bool(data.get("standard", False)),
        )


def split_batches(rows: list[dict[str, Any]], size: int) -> list[list[dict[str, Any]]]:
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    return [rows[i:i + size] for i in range(0, len(rows), size)]


# ── Dispatch ──


class QueueUnavailableError(Exception):
    pass


class BatchDispatcher(Protocol):
    async def enqueue(self, payload: BatchPayload) -> None: ...


class ArqBatchDispatcher:
    """Enqueues batches on arq; the batch key makes re-submission a no-op."""

    def __init__(self) -> None:
        self._pool: ArqRedis | None = None

    async def _get_pool(self) -> ArqRedis:
        if self._pool is None:
            self._pool = await create_pool(redis_settings)
        return self._pool

    async def enqueue(self, payload: BatchPayload) -> None:
        try:
            pool = await self._get_pool()
            await pool.enqueue_job(BATCH_TASK, payload.to_dict(), _job_id=payload.dedupe_key)
        except (RedisError, OSError) as e:
            self._pool = None
            raise QueueUnavailableError(str(e)) from e


# ── Row processing ──


@dataclass
class BatchContext:
    payload: BatchPayload
    template: TemplateDocument | None = None
    issuer: IssuerInfo | None = None


class RowHandler(Protocol):
    async def prepare(self, payload: BatchPayload) -> BatchContext: ...

    async def handle_row(self, context: BatchContext, row: dict[str, Any]) -> UUID: ...


class InvoiceRowHandler:
    """Generates one document (plus supplier and invoice records) per row."""

    def __init__(self, documents: DocumentService = document_service, session_maker=async_session_maker) -> None:
        self.documents = documents
        self.session_maker = session_maker

    async def prepare(self, payload: BatchPayload) -> BatchContext:
        """Load what every row of the batch shares; raising fails all rows."""
        async with self.session_maker() as db:
            if payload.standard:
                entity = (
                    await db.execute(select(Entity).where(Entity.id == payload.entity_id))
                ).scalar_one_or_none()
                if entity is None:
                    raise LookupError(f"Entity {payload.entity_id} not found")
                info = entity.settings or {}
                issuer = IssuerInfo(
                    name=entity.name,
                    email=entity.email or "",
                    address=str(info.get("address", "")),
                    phone=str(info.get("phone", "")),
                    registration_number=str(info.get("registration_number", "")),
                )
                return BatchContext(payload=payload, issuer=issuer)

            row = (
                await db.execute(
                    select(InvoiceTemplate)
                    .where(InvoiceTemplate.id == payload.template_id)
                    .where(InvoiceTemplate.entity_id == payload.entity_id)
                )
            ).scalar_one_or_none()
            if row is None:
                raise LookupError(f"Template {payload.template_id} not found")
            template = TemplateDocument.from_model(row)
            ensure_unique_labels(template.fields)
            return BatchContext(payload=payload, template=template)

    async def handle_row(self, context: BatchContext, row: dict[str, Any]) -> UUID:
        payload = context.payload
        async with self.session_maker() as db:
            supplier_id = None
            supplier_name = first_present(row, SUPPLIER_NAME_COLUMNS)
            if supplier_name:
                supplier = await supplier_service.resolve_or_create(
                    db,
                    payload.entity_id,
                    str(supplier_name),
                    email=first_present(row, SUPPLIER_EMAIL_COLUMNS),
                )
                supplier_id = supplier.id

            if context.template is not None:
                result = await self.documents.generate(
                    db, context.template, row, bulk_job_id=payload.job_id
                )
            else:
                data = invoice_data_from_row(row, context.issuer)
                artifact = await asyncio.to_thread(render_standard_invoice, data)
                result = await self.documents.store(
                    db,
                    entity_id=payload.entity_id,
                    artifact=artifact,
                    name=f"invoice-{data.invoice_number}",
                    values=row,
                    bulk_job_id=payload.job_id,
                )

            try:
                await invoice_service.create_for_row(
                    db, payload.entity_id, row, result.document_id, supplier_id
                )
            except Exception:
                # The document exists; a missing invoice record does not fail the row.
                await db.rollback()
                logger.exception(f"Invoice creation failed for job {payload.job_id}")

            return result.document_id


# ── Orchestrator ──


Archiver = Callable[[UUID, UUID], Awaitable[JobArchive | None]]
Notifier = Callable[[str, JobSnapshot, str | None], Awaitable[bool]]


async def build_archive(entity_id: UUID, job_id: UUID) -> JobArchive | None:
    async with async_session_maker() as db:
        return await document_service.build_job_archive(db, entity_id, job_id)


def _log_local_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("In-process batch failed; its job will not complete", exc_info=error)


@dataclass
class BulkGenerationService:
    store: JobStore = job_store
    handler: RowHandler = field(default_factory=InvoiceRowHandler)
    dispatcher: BatchDispatcher = field(default_factory=ArqBatchDispatcher)
    archiver: Archiver = build_archive
    notifier: Notifier = send_job_notification
    batch_size: int = field(default_factory=lambda: settings.bulk_batch_size)

    def __post_init__(self) -> None:
        self._local_tasks: set[asyncio.Task] = set()

    # ── Submission ──

    async def start(
        self,
        entity_id: UUID,
        rows: list[dict[str, Any]],
        template: TemplateDocument | None = None,
        headers: list[str] | None = None,
        notify_email: str | None = None,
    ) -> JobSnapshot:
        """Validate the submission, create the job and dispatch its batches.

        Without a template the built-in standard invoice layout is used.
        """
        if not rows:
            raise EmptyInputError("CSV file is empty")

        if template is not None:
            ensure_unique_labels(template.fields)
            if headers is None:
                headers = sorted({key for row in rows for key in row})
            missing = missing_required_headers(template.fields, headers)
            if missing:
                raise MissingColumnsError(missing)

        batches = split_batches(rows, self.batch_size)
        job = await self.store.create_job(
            entity_id=entity_id,
            total_rows=len(rows),
            total_batches=len(batches),
            template_id=template.id if template else None,
            notify_email=notify_email,
        )
        logger.info(f"Bulk job {job.id}: {len(rows)} rows in {len(batches)} batches")

        start_row = 1
        for index, batch in enumerate(batches):
            payload = BatchPayload(
                job_id=job.id,
                entity_id=entity_id,
                batch_index=index,
                start_row=start_row,
                rows=batch,
                template_id=template.id if template else None,
                standard=template is None,
            )
            await self.dispatch(payload)
            start_row += len(batch)

        return job

    async def dispatch(self, payload: BatchPayload) -> None:
        try:
            await self.dispatcher.enqueue(payload)
        except QueueUnavailableError as e:
            logger.warning(
                f"Queue unavailable ({e}); running batch {payload.batch_index} of job "
                f"{payload.job_id} in-process. Delivery is at-most-once in this mode."
            )
            task = asyncio.create_task(self.process_batch(payload))
            self._local_tasks.add(task)
            task.add_done_callback(self._local_tasks.discard)
            task.add_done_callback(_log_local_failure)

    async def wait_local(self) -> None:
        """Wait for batches running in-process (used on shutdown and in tests)."""
        while self._local_tasks:
            await asyncio.gather(*list(self._local_tasks), return_exceptions=True)

    # ── Batch processing ──

    async def _process_row(
        self,
        context: BatchContext,
        row_number: int,
        row: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Run one row; returns an error entry instead of raising."""
        try:
            await self.handler.handle_row(context, row)
            return None
        except Exception as e:
            logger.warning(f"Job {context.payload.job_id} row {row_number} failed: {e}")
            return {"row": row_number, "data": row, "error": str(e) or type(e).__name__}

    async def run_batch(self, payload: BatchPayload) -> BatchOutcome:
        """Process every row of a batch concurrently, isolating failures.

        A missing template or entity fails every row. Other errors while
        preparing the batch propagate so the worker retries it.
        """
        try:
            context = await self.handler.prepare(payload)
        except (LookupError, TemplateValidationError) as e:
            logger.warning(f"Batch {payload.batch_index} of job {payload.job_id} could not start: {e}")
            errors = [
                {"row": payload.start_row + i, "data": row, "error": str(e) or type(e).__name__}
                for i, row in enumerate(payload.rows)
            ]
            return BatchOutcome(success_count=0, failure_count=len(errors), errors=errors)

        results = await asyncio.gather(*(
            self._process_row(context, payload.start_row + i, row)
            for i, row in enumerate(payload.rows)
        ))
        errors = [r for r in results if r is not None]
        return BatchOutcome(
            success_count=len(results) - len(errors),
            failure_count=len(errors),
            errors=errors,
        )

    async def process_batch(self, payload: BatchPayload) -> BatchOutcome | None:
        """Process a batch and fold it into the job.

        Returns ``None`` when the batch had already been counted.
        """
        await self.store.mark_processing(payload.job_id)
        outcome = await self.run_batch(payload)

        job = await self.store.record_batch(payload.job_id, payload.batch_index, outcome)
        if job is None:
            return None

        logger.info(
            f"Job {job.id} batch {payload.batch_index}: {outcome.success_count} ok, "
            f"{outcome.failure_count} failed ({job.processed_rows}/{job.total_rows})"
        )
        if job.processed_rows >= job.total_rows and await self.store.claim_finalization(job.id):
            await self.finalize(job.id)
        return outcome

    # ── Finalization ──

    async def finalize(self, job_id: UUID) -> None:
        """Archive, mark terminal and notify. Never raises."""
        try:
            job = await self.store.get(job_id)
            if job is None:
                logger.error(f"Cannot finalize missing job {job_id}")
                return

            status = BulkJobStatus.FAILED if job.success_count == 0 else BulkJobStatus.COMPLETED
            archive = None
            if job.success_count > 0:
                try:
                    archive = await self.archiver(job.entity_id, job_id)
                except Exception:
                    logger.exception(f"Archive for job {job_id} failed; completing without result")

            result_url = archive.url if archive else None
            await self.store.complete(
                job_id,
                status,
                result_url=result_url,
                result_key=archive.key if archive else None,
            )
            logger.info(
                f"Job {job_id} {status.value}: {job.success_count} succeeded, "
                f"{job.failure_count} failed"
            )

            if job.notify_email:
                final = await self.store.get(job_id) or job
                await self.notifier(job.notify_email, final, result_url)
        except Exception:
            logger.exception(f"Finalization of job {job_id} failed")

    # ── Queries ──

    async def get_status(self, entity_id: UUID, job_id: UUID) -> JobSnapshot | None:
        return await self.store.get(job_id, entity_id=entity_id)

    async def list_jobs(self, entity_id: UUID, limit: int = 20) -> list[JobSnapshot]:
        return await self.store.list_jobs(entity_id, limit=limit)


# Singleton instance
bulk_generation_service = BulkGenerationService()
