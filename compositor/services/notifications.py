"""Completion notifications for bulk jobs (SMTP)."""

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from compositor.config import get_settings
from compositor.services.job_store import JobSnapshot

settings = get_settings()
logger = logging.getLogger(__name__)


def _summary_html(job: JobSnapshot, result_url: str | None) -> str:
    link = f'<p><a href="{result_url}">Download all documents (zip)</a></p>' if result_url else ""
    return (
        f"<p>Your bulk generation job has finished with status <b>{job.status.value}</b>.</p>"
        f"<p>{job.success_count} succeeded, {job.failure_count} failed "
        f"out of {job.total_rows} rows.</p>"
        f"{link}"
    )


async def send_job_notification(to_email: str, job: JobSnapshot, result_url: str | None) -> bool:
    """Email a job summary. Returns True on success, False on failure."""
    if not settings.notifications_enabled:
        logger.info(f"Notifications disabled, not emailing {to_email} about job {job.id}")
        return False

    msg = MIMEMultipart()
    msg["From"] = f"{settings.smtp_from_name} <{settings.smtp_from_email}>"
    msg["To"] = to_email
    msg["Subject"] = "Bulk generation completed"
    msg.attach(MIMEText(_summary_html(job, result_url), "html"))

    try:
        await aiosmtplib.send(
            msg,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user or None,
            password=settings.smtp_password or None,
            start_tls=settings.smtp_use_tls,
        )
    except (aiosmtplib.SMTPException, OSError) as e:
        logger.error(f"Job notification to {to_email} failed: {e}")
        return False

    logger.info(f"Job notification sent to {to_email} for job {job.id}")
    return True
