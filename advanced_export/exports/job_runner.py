### advanced_export/exports/job_runner.py

"""
Background Export Job Runner

Executes a queued export: streams the records of the stored query, renders the
spreadsheet into a spooled temporary file, stores it on the configured disk and
keeps the ExportJob row and the owner informed.

Only this runner mutates an ExportJob after it was queued. Whatever happens, a
job never stays PROCESSING once the last attempt is over.
"""

from dataclasses import dataclass
from datetime import datetime
from tempfile import SpooledTemporaryFile
from typing import Callable, Optional

from sqlalchemy.orm import Session

from advanced_export.exports.columns import resolve_columns, simple_columns
from advanced_export.exports.config import ExportConfig
from advanced_export.exports.entities import EntityRegistry, export_registry
from advanced_export.exports.exceptions import ExportExecutionError, ExportJobNotFoundError
from advanced_export.exports.filters import normalize_filters
from advanced_export.exports.models import ExportJob, ExportStatus
from advanced_export.exports.query_builder import build_export_query
from advanced_export.exports.queue import ExportJobPayload, JobAttempt
from advanced_export.exports.renderer import ExportRenderer
from advanced_export.exports.streaming_service import RecordStreamer
from advanced_export.notifications.services import DatabaseNotificationBackend, ExportNotifier
from advanced_export.utils.logger import get_logger
from advanced_export.utils.storage import get_disk

logger = get_logger(__name__)

# Rendered files above this size spill from memory to disk
SPOOL_MAX_SIZE = 10 * 1024 * 1024


def download_url(export_id: int) -> str:
    return f"/api/exports/{export_id}/download"


@dataclass(frozen=True)
class ExportJobResult:
    """Outcome of a successful job body."""
    export_id: int
    records: int
    disk: str
    path: str
    file_name: str

    def to_dict(self) -> dict:
        return {
            "status": "success",
            "export_id": self.export_id,
            "record_count": self.records,
            "disk": self.disk,
            "path": self.path,
            "file_name": self.file_name,
        }


class ExportJobRunner:
    """Runs queued exports against a database session."""

    def __init__(
        self,
        db: Session,
        config: ExportConfig,
        renderer: Optional[ExportRenderer] = None,
        disk_resolver: Callable[[str], object] = get_disk,
        notifier: Optional[ExportNotifier] = None,
        registry: EntityRegistry = export_registry,
    ):
        self.db = db
        self.config = config
        self.renderer = renderer or ExportRenderer(config)
        self.disk_resolver = disk_resolver
        self.notifier = notifier or ExportNotifier(config, DatabaseNotificationBackend(db))
        self.registry = registry

    def _get_job(self, export_id: int) -> ExportJob:
        job = self.db.get(ExportJob, export_id)
        if job is None:
            raise ExportJobNotFoundError(export_id)
        return job

    def execute(self, payload: ExportJobPayload) -> ExportJobResult:
        """
        Generate and store the export file.

        Raises NoDataError when the query no longer matches any record.
        """
        job = self._get_job(payload.export_id)
        entity = self.registry.get(payload.entity_type)

        job.status = ExportStatus.PROCESSING
        job.started_at = datetime.utcnow()
        job.processed_records = 0
        job.error_message = None
        self.db.commit()

        logger.info(
            "Starting export job",
            export_id=job.id,
            entity=payload.entity_type,
            file_name=payload.file_name,
            filters=list(payload.filters.keys()),
        )

        filters = normalize_filters(payload.filters)
        plan = build_export_query(
            entity,
            filters,
            sort_field=payload.sort_field,
            sort_direction=payload.sort_direction,
            eager_loads=payload.eager_loads,
            generic_filters=self.config.default_filters,
        ).limited(self.config.limits.max_records)

        streamer = RecordStreamer(self.db, self.config.limits.chunk_size)
        job.total_records = streamer.total_to_export(plan)
        self.db.commit()

        if payload.columns is None:
            columns = simple_columns(entity, self.config)
        else:
            columns = resolve_columns(entity, payload.columns, self.config)

        def on_chunk(processed: int) -> None:
            # Flushed only: committing would close the server-side cursor
            job.processed_records = processed
            self.db.flush()

        disk = self.disk_resolver(self.config.file.disk)
        path = f"{self.config.file.directory.strip('/')}/{payload.file_name}"

        with SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE, mode="w+b") as tmp:
            records = self.renderer.render_to(
                tmp,
                streamer.stream(plan, on_chunk=on_chunk),
                columns,
                payload.template,
                file_format=payload.file_format,
                sheet_title=entity.name,
            )
            disk.put(path, tmp)

        return ExportJobResult(
            export_id=job.id,
            records=records,
            disk=self.config.file.disk,
            path=path,
            file_name=payload.file_name,
        )

    def on_success(self, payload: ExportJobPayload, result: ExportJobResult) -> None:
        job = self._get_job(payload.export_id)
        job.status = ExportStatus.COMPLETED
        job.disk = result.disk
        job.path = result.path
        job.processed_records = result.records
        job.total_records = result.records
        job.completed_at = datetime.utcnow()
        job.error_message = None
        self.db.commit()

        logger.info(
            "Export job completed",
            export_id=job.id,
            entity=payload.entity_type,
            records=result.records,
            path=result.path,
        )
        self._notify(
            lambda: self.notifier.job_completed(
                payload.owner_user_id, download_url(job.id), result.records, payload.file_name
            ),
            job.id,
        )

    def on_no_data(self, payload: ExportJobPayload) -> None:
        """Records disappeared between queueing and execution: complete with no file."""
        job = self._get_job(payload.export_id)
        job.status = ExportStatus.COMPLETED
        job.total_records = 0
        job.processed_records = 0
        job.path = None
        job.completed_at = datetime.utcnow()
        self.db.commit()
        self._notify(lambda: self.notifier.no_data(payload.owner_user_id), job.id)

    def on_retry(self, payload: ExportJobPayload, error: BaseException, attempt: JobAttempt) -> None:
        """Leave the job PENDING with the attempt's error until the next attempt starts."""
        self.db.rollback()
        job = self.db.get(ExportJob, payload.export_id)
        if job is None:
            return
        job.status = ExportStatus.PENDING
        job.error_message = f"Attempt {attempt.number} of {attempt.max_attempts} failed: {error}"
        self.db.commit()

    def on_failure(self, payload: ExportJobPayload, error: BaseException) -> None:
        """
        Mark the job failed and tell the owner.

        Notification problems are logged and never escape.
        """
        self.db.rollback()
        job = self.db.get(ExportJob, payload.export_id)
        if job is None:
            logger.error("Export job to fail not found", export_id=payload.export_id, error=str(error))
            return

        try:
            job.status = ExportStatus.FAILED
            job.error_message = str(error) or error.__class__.__name__
            job.completed_at = datetime.utcnow()
            self.db.commit()
        except Exception as commit_error:
            logger.error(
                "Failed to update export job status",
                export_id=payload.export_id,
                error=str(commit_error),
                exc_info=True,
            )
            self.db.rollback()
            raise

        logger.error(
            "Export job failed",
            export_id=job.id,
            entity=payload.entity_type,
            file_name=payload.file_name,
            filters=payload.filters,
            error=job.error_message,
        )
        self._notify(lambda: self.notifier.job_failed(payload.owner_user_id, payload.file_name), job.id)

    def on_interrupted(self, payload: ExportJobPayload, error: BaseException) -> bool:
        """
        Fail a job whose attempt ended without reaching ``on_failure``
        (hard time limit, lost worker).

        Jobs already completed or failed are left alone. Returns True when the
        job was failed here.
        """
        self.db.rollback()
        job = self.db.get(ExportJob, payload.export_id)
        if job is None or job.status in (ExportStatus.COMPLETED, ExportStatus.FAILED):
            return False

        logger.warning(
            "Export attempt interrupted",
            export_id=job.id,
            status=job.status.value,
            error=repr(error),
        )
        self.on_failure(payload, ExportExecutionError(f"Export attempt interrupted: {error!r}"))
        return True

    def _notify(self, send: Callable[[], object], export_id: int) -> None:
        try:
            send()
        except Exception as e:
            logger.error("Failed to send export notification", export_id=export_id, error=str(e), exc_info=True)
            self.db.rollback()
