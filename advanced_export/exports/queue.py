### advanced_export/exports/queue.py

"""
Export Job Queue

Queue-independent contract for background exports:
- ``ExportQueue.enqueue(payload)`` hands a job to the queue technology
- ``JobAttempt.attempts_remaining`` tells the job body whether a failure is terminal
- ``run_attempt`` applies the success/failure contract around one attempt

The Celery task in ``advanced_export.exports.tasks`` is only an adapter around
``run_attempt``.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from advanced_export.exports.config import ExportConfig
from advanced_export.exports.exceptions import ExportValidationError, NoDataError
from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)

PROCESS_EXPORT_TASK = "exports.process_export_job"


class ExportJobPayload(BaseModel):
    """Everything a background export needs; JSON-serializable."""

    export_id: int = Field(..., description="ExportJob row to process")
    entity_type: str
    filters: Dict[str, Any] = Field(default_factory=dict, description="Serialized canonical filters")
    file_name: str
    template: str
    columns: Optional[List[Dict[str, Any]]] = Field(
        None, description="Selected {field, title} columns; None for a simple export"
    )
    sort_field: str = "created_at"
    sort_direction: str = "desc"
    eager_loads: List[str] = Field(default_factory=list)
    owner_user_id: Optional[int] = None
    file_format: str = "xlsx"


class ExportQueue(Protocol):
    """Hands export jobs to a background worker without waiting for them."""

    def enqueue(self, payload: ExportJobPayload) -> Optional[str]:
        """Queue the job and return the queue's task identifier, if any."""
        ...


class CeleryExportQueue:
    """
    Sends export jobs to Celery by task name.

    A ``queue.connection`` other than ``default`` is used as the broker URL for
    the publish.
    """

    def __init__(self, config: ExportConfig, celery_app=None):
        self.config = config
        if celery_app is None:
            from advanced_export.worker.app import app as celery_app
        self.celery_app = celery_app

    def enqueue(self, payload: ExportJobPayload) -> Optional[str]:
        queue_config = self.config.queue
        kwargs = {"payload": payload.model_dump(mode="json")}

        if queue_config.connection and queue_config.connection != "default":
            with self.celery_app.connection_for_write(queue_config.connection) as connection:
                result = self.celery_app.send_task(
                    PROCESS_EXPORT_TASK, kwargs=kwargs, queue=queue_config.name, connection=connection
                )
        else:
            result = self.celery_app.send_task(PROCESS_EXPORT_TASK, kwargs=kwargs, queue=queue_config.name)

        logger.info(
            "Export job enqueued",
            export_id=payload.export_id,
            entity=payload.entity_type,
            queue=queue_config.name,
            task_id=result.id,
        )
        return result.id


@dataclass(frozen=True)
class JobAttempt:
    """One execution attempt of a job; ``number`` starts at 1."""
    number: int
    max_attempts: int

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.number)

    @property
    def is_last(self) -> bool:
        return self.attempts_remaining == 0


class JobRunner(Protocol):
    def execute(self, payload: ExportJobPayload) -> Any:
        ...

    def on_success(self, payload: ExportJobPayload, result: Any) -> None:
        ...

    def on_no_data(self, payload: ExportJobPayload) -> None:
        ...

    def on_retry(self, payload: ExportJobPayload, error: BaseException, attempt: JobAttempt) -> None:
        ...

    def on_failure(self, payload: ExportJobPayload, error: BaseException) -> None:
        ...


RetryCallback = Callable[[BaseException], Any]


def run_attempt(
    runner: JobRunner,
    payload: ExportJobPayload,
    attempt: JobAttempt,
    retry: RetryCallback,
) -> Any:
    """
    Run one attempt of an export job.

    - success: ``on_success`` and the result is returned
    - no matching records: ``on_no_data``, nothing is retried
    - validation error: terminal at once, ``on_failure`` and re-raise
    - any other error with attempts left: ``on_retry`` then ``retry(error)``
    - any other error on the last attempt: ``on_failure`` and re-raise

    ``retry`` may raise (Celery's ``Task.retry`` does); if it returns, the
    original error is re-raised.
    """
    log = logger.bind(export_id=payload.export_id, entity=payload.entity_type, attempt=attempt.number)

    try:
        result = runner.execute(payload)
        runner.on_success(payload, result)
        return result
    except NoDataError:
        log.info("Export job matched no records")
        runner.on_no_data(payload)
        return None
    except ExportValidationError as e:
        log.error("Export job rejected, not retrying", error=str(e))
        runner.on_failure(payload, e)
        raise
    except Exception as e:
        if attempt.attempts_remaining > 0:
            log.warning(
                "Export attempt failed, retrying",
                error=str(e),
                attempts_remaining=attempt.attempts_remaining,
            )
            runner.on_retry(payload, e, attempt)
            retry(e)
            raise
        log.error("Export job failed, no attempts left", error=str(e), exc_info=True)
        runner.on_failure(payload, e)
        raise
