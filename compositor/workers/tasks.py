"""Arq task definitions for bulk document generation."""

import logging

from arq import Retry

from compositor.config import get_settings
from compositor.database import engine
from compositor.services.bulk_generation import BatchPayload, bulk_generation_service
from compositor.workers.settings import redis_settings

settings = get_settings()
logger = logging.getLogger(__name__)

MAX_TRIES = 5


async def process_bulk_batch(ctx: dict, payload: dict) -> dict:
    """
    Generate the documents of one bulk batch and fold the outcome into its job.

    Row failures are recorded on the job and never fail the task. Anything
    else (the job store being unreachable, typically) is retried with a
    growing delay; a batch already counted is skipped on redelivery.

    Args:
        ctx: Arq context
        payload: ``BatchPayload.to_dict()`` output

    Returns:
        Dict with the batch counts
    """
    batch = BatchPayload.from_dict(payload)
    job_try = ctx.get("job_try", 1)

    try:
        outcome = await bulk_generation_service.process_batch(batch)
    except Exception as e:
        if job_try < MAX_TRIES:
            logger.warning(
                f"Batch {batch.batch_index} of job {batch.job_id} failed "
                f"(try {job_try}/{MAX_TRIES}): {e}"
            )
            raise Retry(defer=job_try * 5) from e
        logger.exception(f"Batch {batch.batch_index} of job {batch.job_id} gave up")
        return {"error": str(e)}

    if outcome is None:
        return {"job_id": str(batch.job_id), "batch": batch.batch_index, "skipped": True}

    return {
        "job_id": str(batch.job_id),
        "batch": batch.batch_index,
        "success": outcome.success_count,
        "failed": outcome.failure_count,
    }


# ── Lifecycle ───────────────────────────────────────────────────────


async def startup(ctx: dict) -> None:
    """Worker startup hook."""
    logger.info("Worker starting up...")


async def shutdown(ctx: dict) -> None:
    """Worker shutdown hook."""
    logger.info("Worker shutting down...")
    await engine.dispose()


class WorkerSettings:
    """Arq worker settings."""

    functions = [process_bulk_batch]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = redis_settings
    max_jobs = 10
    max_tries = MAX_TRIES
    job_timeout = 600  # 10 minutes max per batch
    keep_result = 3600  # Keep results for 1 hour
