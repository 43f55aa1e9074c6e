"""
Celery Tasks for Async Export Processing

These tasks generate queued exports in the background, freeing up the API to
return immediately to the user. Retry and failure handling live in
``run_attempt``; the task only maps Celery's retry state onto it.

An attempt killed by the hard time limit or by a lost worker never returns to
``run_attempt``. ``ExportTask.on_failure`` (worker process) and the
``task_failure`` handler (pool parent, which reports those kills) fail the job
instead, so it does not stay PROCESSING.
"""

from typing import Any, Optional

from celery import Task, shared_task
from celery.exceptions import TimeLimitExceeded, WorkerLostError
from celery.signals import task_failure

from advanced_export.core.config import get_export_config
from advanced_export.core.db import SessionLocal
from advanced_export.exports.job_runner import ExportJobRunner
from advanced_export.exports.queue import PROCESS_EXPORT_TASK, ExportJobPayload, JobAttempt, run_attempt
from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)

_queue_config = get_export_config().queue

# Failures reported by the pool without the task body getting a chance to clean up
INTERRUPTIONS = (TimeLimitExceeded, WorkerLostError)


def _payload_from(args: Any, kwargs: Any) -> Optional[ExportJobPayload]:
    raw = (kwargs or {}).get("payload")
    if raw is None and args:
        raw = args[0]
    if raw is None:
        return None
    return ExportJobPayload.model_validate(raw)


def fail_interrupted_job(args: Any, kwargs: Any, error: BaseException) -> bool:
    """Mark the job of a failed task as FAILED unless it already finished."""
    payload = _payload_from(args, kwargs)
    if payload is None:
        logger.error("Failed export task carried no payload", error=repr(error))
        return False

    db = SessionLocal()
    try:
        return ExportJobRunner(db, get_export_config()).on_interrupted(payload, error)
    finally:
        db.close()


class ExportTask(Task):
    """
    Base task for export jobs.

    Any failure that escapes the task body fails the job if it is still
    pending or processing.
    """

    abstract = True

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error("Export task failed", task=self.name, task_id=task_id, error=repr(exc))
        fail_interrupted_job(args, kwargs, exc)


@task_failure.connect
def fail_export_on_interruption(sender=None, task_id=None, exception=None, args=None, kwargs=None, **extra):
    """Hard time limits and lost workers are only reported here, in the pool parent."""
    if getattr(sender, "name", None) != PROCESS_EXPORT_TASK or not isinstance(exception, INTERRUPTIONS):
        return
    logger.error("Export task interrupted", task_id=task_id, error=repr(exception))
    fail_interrupted_job(args, kwargs, exception)


@shared_task(
    name=PROCESS_EXPORT_TASK,
    bind=True,
    base=ExportTask,
    max_retries=_queue_config.tries - 1,
    default_retry_delay=_queue_config.retry_delay,
    time_limit=_queue_config.timeout,
    soft_time_limit=max(_queue_config.timeout - 30, 1),
    acks_late=True,
)
def process_export_job(self, payload: dict):
    """
    Generate a queued export file.

    This task:
    1. Loads the ExportJob and marks it processing
    2. Rebuilds the query from the stored filters and streams it in chunks
    3. Renders and stores the file, then marks the job completed
    4. Retries on failure until the attempts run out, then marks it failed

    The soft time limit raises inside the attempt and is handled like any
    other failure; the hard limit is handled by ``fail_export_on_interruption``.

    Args:
        payload: Serialized ExportJobPayload

    Returns:
        dict: Result summary
    """
    config = get_export_config()
    job_payload = ExportJobPayload.model_validate(payload)
    attempt = JobAttempt(number=self.request.retries + 1, max_attempts=config.queue.tries)

    logger.info(
        "Processing export job",
        export_id=job_payload.export_id,
        entity=job_payload.entity_type,
        attempt=attempt.number,
        max_attempts=attempt.max_attempts,
        task_id=self.request.id,
    )

    db = SessionLocal()
    try:
        runner = ExportJobRunner(db, config)
        result = run_attempt(
            runner,
            job_payload,
            attempt,
            retry=lambda exc: self.retry(exc=exc, countdown=config.queue.retry_delay),
        )
        if result is None:
            return {"status": "no_data", "export_id": job_payload.export_id, "record_count": 0}
        return result.to_dict()
    finally:
        db.close()
