"""Bulk generation endpoints: submit a CSV or JSON rows, poll, download errors."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Request, Response, status
from pydantic import ValidationError

from compositor.config import get_settings
from compositor.core.ingest import CsvFormatError, error_report_csv, parse_csv
from compositor.deps import DbSession, EntityId
from compositor.schemas.bulk import BulkJobCreate, BulkJobCreated, BulkJobStatusRead
from compositor.schemas.template import TemplateDocument
from compositor.services.bulk_generation import bulk_generation_service
from compositor.services.templates import template_service

settings = get_settings()
router = APIRouter()

MAX_CSV_SIZE = 10 * 1024 * 1024  # 10 MB


def _as_bool(value: object) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


async def _read_submission(request: Request) -> tuple[BulkJobCreate, list[str] | None]:
    """Accept either a multipart CSV upload or a JSON body of rows."""
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("multipart/form-data"):
        try:
            return BulkJobCreate.model_validate(await request.json()), None
        except (ValueError, ValidationError) as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid request body: {e}")

    form = await request.form()
    upload = form.get("file")
    if upload is None or isinstance(upload, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV file is required")

    content = await upload.read()
    if len(content) > MAX_CSV_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Max size: {MAX_CSV_SIZE // (1024 * 1024)}MB",
        )
    try:
        table = parse_csv(content.decode("utf-8-sig"))
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV must be UTF-8 encoded")
    except CsvFormatError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        submission = BulkJobCreate(
            template_id=form.get("template_id") or None,
            standard=_as_bool(form.get("standard", "false")),
            rows=table.rows,
            notify_email=form.get("notify_email") or None,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid form fields: {e}")
    return submission, table.headers


@router.post("", response_model=BulkJobCreated, status_code=status.HTTP_202_ACCEPTED)
async def start_bulk_generation(
    request: Request,
    entity_id: EntityId,
    db: DbSession,
) -> BulkJobCreated:
    """Validate the rows and start a bulk job.

    Missing required columns and duplicate labels are rejected with 422
    before any job is created.
    """
    submission, headers = await _read_submission(request)

    if len(submission.rows) > settings.bulk_max_rows:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many rows. Max: {settings.bulk_max_rows}",
        )

    template = None
    if submission.template_id:
        row = await template_service.get(db, entity_id, submission.template_id)
        if not row:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
        template = TemplateDocument.from_model(row)
    elif not submission.standard:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either template_id or standard=true is required",
        )

    job = await bulk_generation_service.start(
        entity_id,
        submission.rows,
        template=template,
        headers=headers,
        notify_email=submission.notify_email,
    )
    return BulkJobCreated(
        job_id=job.id,
        status=job.status,
        total_rows=job.total_rows,
        total_batches=job.total_batches,
    )


@router.get("", response_model=list[BulkJobStatusRead])
async def list_bulk_jobs(entity_id: EntityId) -> list[BulkJobStatusRead]:
    """Latest 20 jobs of the entity."""
    jobs = await bulk_generation_service.list_jobs(entity_id)
    return [BulkJobStatusRead.model_validate(job) for job in jobs]


@router.get("/{job_id}", response_model=BulkJobStatusRead)
async def get_bulk_job(job_id: UUID, entity_id: EntityId) -> BulkJobStatusRead:
    job = await bulk_generation_service.get_status(entity_id, job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return BulkJobStatusRead.model_validate(job)


@router.get("/{job_id}/errors")
async def download_bulk_job_errors(job_id: UUID, entity_id: EntityId) -> Response:
    """Per-row failures as CSV: row number, message and the submitted data."""
    job = await bulk_generation_service.get_status(entity_id, job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return Response(
        content=error_report_csv(sorted(job.error_log, key=lambda e: e.get("row", 0))),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="bulk-{job_id}-errors.csv"'},
    )
