### advanced_export/exports/service.py

"""
Export Service

Entry point for an export request:

1. Resolve the entity, columns and render template (validation, before any query)
2. Normalize filters and compile the query plan
3. Route on the estimated record count:
   - at or below the queue threshold (or queue disabled): stream and render inline
   - above it: persist a PENDING ExportJob and enqueue it, returning immediately
"""

import io
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from advanced_export.exports.columns import ColumnSpec, resolve_columns, simple_columns
from advanced_export.exports.config import ExportConfig
from advanced_export.exports.entities import EntityDescriptor, EntityRegistry, export_registry
from advanced_export.exports.exceptions import ExportValidationError, NoDataError
from advanced_export.exports.filters import FilterSet, normalize_filters, serialize_filters
from advanced_export.exports.models import ExportJob, ExportStatus
from advanced_export.exports.query_builder import QueryPlan, build_export_query
from advanced_export.exports.queue import ExportJobPayload, ExportQueue
from advanced_export.exports.renderer import MEDIA_TYPES, ExportRenderer, template_name
from advanced_export.exports.streaming_service import RecordStreamer
from advanced_export.notifications.schemas import NotificationMessage
from advanced_export.notifications.services import ExportNotifier, InlineNotificationBackend
from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_FORMATS = tuple(MEDIA_TYPES.keys())


class ExecutionMode(str, Enum):
    SYNC = "sync"
    ASYNC = "async"


class OutcomeKind(str, Enum):
    FILE = "file"
    NO_DATA = "no_data"
    QUEUED = "queued"
    ERROR = "error"


def choose_execution_mode(estimated_count: int, config: ExportConfig) -> ExecutionMode:
    """Inline when queueing is off or the estimate is within the threshold."""
    if not config.queue.enabled or estimated_count <= config.limits.queue_threshold:
        return ExecutionMode.SYNC
    return ExecutionMode.ASYNC


def generate_file_name(
    entity: EntityDescriptor,
    export_type: str,
    config: ExportConfig,
    now: Optional[datetime] = None,
    extension: Optional[str] = None,
) -> str:
    """``customers_advanced_2024-01-31_10-00-00.xlsx`` with the default format."""
    now = now or datetime.now()
    stem = config.file.name_format.format(
        resource=entity.table_name,
        type=export_type,
        datetime=now.strftime(config.file.datetime_format),
    )
    return f"{stem}.{extension or config.file.extension}"


@dataclass(frozen=True)
class ExportRequest:
    """
    A validated export request.

    ``columns`` None asks for a simple export (every exportable column); a list,
    even an empty one, asks for an advanced export with that selection.
    """
    entity_type: str
    filters: Mapping[str, Any] = field(default_factory=dict)
    columns: Optional[Sequence[Any]] = None
    sort_field: str = "created_at"
    sort_direction: str = "desc"
    owner_user_id: Optional[int] = None
    file_format: Optional[str] = None

    @property
    def export_type(self) -> str:
        return "simple" if self.columns is None else "advanced"


@dataclass
class ExportOutcome:
    """What happened to a dispatched export."""
    kind: OutcomeKind
    file_name: Optional[str] = None
    content: Optional[bytes] = None
    media_type: Optional[str] = None
    record_count: int = 0
    export_id: Optional[int] = None
    mode: Optional[ExecutionMode] = None
    error: Optional[str] = None
    notifications: List[NotificationMessage] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def status_url(self) -> Optional[str]:
        if self.export_id is None:
            return None
        return f"/api/exports/{self.export_id}/status"


class ExportService:
    """Validates, routes and executes export requests."""

    def __init__(
        self,
        db: Session,
        config: ExportConfig,
        queue: ExportQueue,
        registry: EntityRegistry = export_registry,
        renderer: Optional[ExportRenderer] = None,
        notifier: Optional[ExportNotifier] = None,
    ):
        self.db = db
        self.config = config
        self.queue = queue
        self.registry = registry
        self.renderer = renderer or ExportRenderer(config)
        self.notifier = notifier or ExportNotifier(config, InlineNotificationBackend())
        self.streamer = RecordStreamer(db, config.limits.chunk_size)

    def dispatch(self, request: ExportRequest) -> ExportOutcome:
        """
        Run or queue an export.

        Raises ExportValidationError (unknown entity, bad column selection,
        unknown template or format) before any query executes. Every other
        failure is reported as an ERROR outcome.
        """
        entity = self.registry.get(request.entity_type)
        export_type = request.export_type

        if request.columns is None:
            columns = simple_columns(entity, self.config)
        else:
            columns = resolve_columns(entity, request.columns, self.config)

        template = template_name(entity, export_type, self.config)
        self.renderer.templates.get(template, self.config)

        file_format = request.file_format or self.config.file.extension
        if file_format not in SUPPORTED_FORMATS:
            raise ExportValidationError(f"Unsupported export format: {file_format}")

        filters = normalize_filters(request.filters, self.config.fallback_filters)
        file_name = generate_file_name(entity, export_type, self.config, extension=file_format)

        log = logger.bind(entity=entity.name, file_name=file_name, filters=serialize_filters(filters))

        try:
            plan = build_export_query(
                entity,
                filters,
                sort_field=request.sort_field,
                sort_direction=request.sort_direction,
                generic_filters=self.config.default_filters,
            ).limited(self.config.limits.max_records)

            estimated = self.streamer.count(plan)
            if estimated == 0:
                raise NoDataError(entity.name)

            mode = choose_execution_mode(estimated, self.config)
            log.info("Export routed", mode=mode.value, estimated=estimated)

            if mode == ExecutionMode.ASYNC:
                outcome = self._queue(request, entity, plan, filters, columns, template, file_name, file_format, estimated)
            else:
                outcome = self._run_sync(request, entity, plan, columns, template, file_name, file_format)
            outcome.warnings = list(plan.warnings)
            return outcome

        except NoDataError:
            log.info("Export matched no records")
            return ExportOutcome(
                kind=OutcomeKind.NO_DATA,
                file_name=file_name,
                notifications=_collect(self.notifier.no_data(request.owner_user_id)),
            )
        except ExportValidationError:
            raise
        except Exception as e:
            log.error("Export failed", error=str(e), exc_info=True)
            self.db.rollback()
            return ExportOutcome(
                kind=OutcomeKind.ERROR,
                file_name=file_name,
                error=str(e),
                notifications=_collect(self.notifier.error(str(e), request.owner_user_id)),
            )

    def _run_sync(
        self,
        request: ExportRequest,
        entity: EntityDescriptor,
        plan: QueryPlan,
        columns: List[ColumnSpec],
        template: str,
        file_name: str,
        file_format: str,
    ) -> ExportOutcome:
        buffer = io.BytesIO()
        record_count = self.renderer.render_to(
            buffer,
            self.streamer.stream(plan),
            columns,
            template,
            file_format=file_format,
            sheet_title=entity.name,
        )
        content = buffer.getvalue()

        logger.info("Synchronous export generated", entity=entity.name, file_name=file_name, bytes=len(content))
        return ExportOutcome(
            kind=OutcomeKind.FILE,
            mode=ExecutionMode.SYNC,
            file_name=file_name,
            content=content,
            media_type=MEDIA_TYPES[file_format],
            record_count=record_count,
            notifications=_collect(self.notifier.success(record_count, request.owner_user_id)),
        )

    def _queue(
        self,
        request: ExportRequest,
        entity: EntityDescriptor,
        plan: QueryPlan,
        filters: FilterSet,
        columns: List[ColumnSpec],
        template: str,
        file_name: str,
        file_format: str,
        estimated: int,
    ) -> ExportOutcome:
        serialized_filters = serialize_filters(filters)

        export_job = ExportJob(
            entity_type=entity.name,
            file_name=file_name,
            status=ExportStatus.PENDING,
            total_records=min(estimated, self.config.limits.max_records),
            disk=self.config.file.disk,
            filters=serialized_filters,
            owner_user_id=request.owner_user_id,
        )
        self.db.add(export_job)
        self.db.commit()
        self.db.refresh(export_job)

        payload = ExportJobPayload(
            export_id=export_job.id,
            entity_type=entity.name,
            filters=serialized_filters,
            file_name=file_name,
            template=template,
            columns=None if request.columns is None else [c.to_dict() for c in columns],
            sort_field=plan.sort_field,
            sort_direction=plan.sort_direction,
            eager_loads=list(plan.eager_loads),
            owner_user_id=request.owner_user_id,
            file_format=file_format,
        )

        try:
            task_id = self.queue.enqueue(payload)
        except Exception as e:
            export_job.status = ExportStatus.FAILED
            export_job.error_message = f"Could not enqueue export: {e}"
            export_job.completed_at = datetime.utcnow()
            self.db.commit()
            raise

        export_job.celery_task_id = task_id
        self.db.commit()

        logger.info(
            "Export queued",
            export_id=export_job.id,
            entity=entity.name,
            task_id=task_id,
            estimated=estimated,
        )
        return ExportOutcome(
            kind=OutcomeKind.QUEUED,
            mode=ExecutionMode.ASYNC,
            file_name=file_name,
            export_id=export_job.id,
            record_count=export_job.total_records,
            notifications=_collect(self.notifier.queued(request.owner_user_id)),
        )


def _collect(message: Optional[NotificationMessage]) -> List[NotificationMessage]:
    return [message] if message is not None else []
