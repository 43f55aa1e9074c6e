### advanced_export/exports/router.py

"""
Export API Endpoints

Provides REST API for requesting, monitoring and downloading exports.
"""

import io
import math
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse, StreamingResponse
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from advanced_export.core.config import get_export_config
from advanced_export.core.db import get_db
from advanced_export.exports.config import ExportConfig
from advanced_export.exports.exceptions import ExportValidationError
from advanced_export.exports.job_runner import download_url
from advanced_export.exports.models import ExportJob, ExportStatus
from advanced_export.exports.queue import CeleryExportQueue, ExportQueue
from advanced_export.exports.renderer import MEDIA_TYPES
from advanced_export.exports.schemas import (
    ExportErrorResponse,
    ExportListItem,
    ExportQueuedResponse,
    ExportRequestBody,
    ExportStatusResponse,
    NoDataResponse,
    PaginatedExportListResponse,
)
from advanced_export.exports.service import ExportRequest, ExportService, OutcomeKind
from advanced_export.notifications.models import UserNotification
from advanced_export.notifications.schemas import UserNotificationRead
from advanced_export.utils.logger import get_logger
from advanced_export.utils.storage import get_disk

logger = get_logger(__name__)

router = APIRouter(prefix="/exports", tags=["Exports"])


def get_current_user_id(x_user_id: Optional[int] = Header(None, alias="X-User-Id")) -> Optional[int]:
    """Requesting user, as forwarded by the authenticating gateway."""
    return x_user_id


def require_user_id(user_id: Optional[int] = Depends(get_current_user_id)) -> int:
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required"
        )
    return user_id


def get_export_queue(config: ExportConfig = Depends(get_export_config)) -> ExportQueue:
    return CeleryExportQueue(config)


def get_export_service(
    db: Session = Depends(get_db),
    config: ExportConfig = Depends(get_export_config),
    queue: ExportQueue = Depends(get_export_queue),
) -> ExportService:
    return ExportService(db, config, queue)


def get_disk_resolver() -> Callable[[str], object]:
    return get_disk


def _get_owned_job(db: Session, export_id: int, user_id: int) -> ExportJob:
    export_job = db.execute(
        select(ExportJob).where(
            ExportJob.id == export_id,
            ExportJob.owner_user_id == user_id,
        )
    ).scalar_one_or_none()

    if not export_job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Export job {export_id} not found or access denied"
        )
    return export_job


@router.get("/my-exports", response_model=PaginatedExportListResponse)
def list_my_exports(
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(10, ge=1, le=100, description="Items per page"),
    status_filter: Optional[ExportStatus] = Query(None, description="Filter by status"),
    db: Session = Depends(get_db),
    user_id: int = Depends(require_user_id),
):
    """
    List all export jobs for the current user.

    Returns paginated list of exports with their status.
    """
    query = select(ExportJob).where(ExportJob.owner_user_id == user_id)

    if status_filter:
        query = query.where(ExportJob.status == status_filter)

    total_items = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()

    offset = (page - 1) * per_page
    exports = db.execute(
        query.order_by(desc(ExportJob.created_at), desc(ExportJob.id)).offset(offset).limit(per_page)
    ).scalars().all()

    items = [
        ExportListItem(
            export_id=exp.id,
            entity_type=exp.entity_type,
            status=exp.status,
            total_records=exp.total_records,
            file_name=exp.file_name,
            created_at=exp.created_at,
            completed_at=exp.completed_at,
        )
        for exp in exports
    ]

    total_pages = math.ceil(total_items / per_page) if per_page > 0 else 0

    return PaginatedExportListResponse(
        items=items,
        total_items=total_items,
        page=page,
        per_page=per_page,
        total_pages=total_pages,
    )


@router.get("/notifications", response_model=list[UserNotificationRead])
def list_my_notifications(
    unread_only: bool = Query(False, description="Only notifications not yet read"),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    user_id: int = Depends(require_user_id),
):
    """Export notifications (job completed / failed) for the current user, newest first."""
    query = select(UserNotification).where(UserNotification.user_id == user_id)
    if unread_only:
        query = query.where(UserNotification.read_at.is_(None))
    notifications = db.execute(
        query.order_by(desc(UserNotification.created_at), desc(UserNotification.id)).limit(limit)
    ).scalars().all()
    return [UserNotificationRead.model_validate(n) for n in notifications]


@router.post(
    "/{entity_type}",
    status_code=status.HTTP_200_OK,
    responses={
        200: {"description": "Generated file, or a no-data notice"},
        202: {"model": ExportQueuedResponse, "description": "Export queued for background processing"},
        422: {"description": "Invalid entity, column selection or format"},
        500: {"model": ExportErrorResponse, "description": "Export failed"},
    },
)
def request_export(
    entity_type: str,
    body: ExportRequestBody,
    service: ExportService = Depends(get_export_service),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    """
    Export an entity.

    Small result sets are generated inline and returned as a file download.
    Larger ones are queued; the response carries the export ID and a status URL
    to poll.
    """
    request = ExportRequest(
        entity_type=entity_type,
        filters=body.filters,
        columns=None if body.columns is None else [c.model_dump() for c in body.columns],
        sort_field=body.order_column,
        sort_direction=body.order_direction,
        owner_user_id=user_id,
        file_format=body.format,
    )

    try:
        outcome = service.dispatch(request)
    except ExportValidationError as e:
        logger.info("Export request rejected", entity=entity_type, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )

    if outcome.kind == OutcomeKind.FILE:
        return StreamingResponse(
            io.BytesIO(outcome.content),
            media_type=outcome.media_type,
            headers={
                "Content-Disposition": f'attachment; filename="{outcome.file_name}"',
                "X-Export-Records": str(outcome.record_count),
            },
        )

    if outcome.kind == OutcomeKind.NO_DATA:
        message = outcome.notifications[0].body if outcome.notifications else "No records found"
        return NoDataResponse(message=message, notifications=outcome.notifications)

    if outcome.kind == OutcomeKind.QUEUED:
        response = ExportQueuedResponse(
            export_id=outcome.export_id,
            file_name=outcome.file_name,
            estimated_records=outcome.record_count,
            status_url=outcome.status_url,
            notifications=outcome.notifications,
        )
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=response.model_dump(mode="json"))

    error = ExportErrorResponse(message=outcome.error or "Export failed", notifications=outcome.notifications)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error.model_dump(mode="json"),
    )


@router.get("/{export_id}/status", response_model=ExportStatusResponse)
def get_export_status(
    export_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(require_user_id),
):
    """
    Check the status of an export job.

    **Status Values:**
    - pending: Export job created, waiting for a worker (or for its next attempt)
    - processing: Export is being generated
    - completed: Export ready for download
    - failed: Export failed (see error_message)
    """
    export_job = _get_owned_job(db, export_id, user_id)
    completed_with_file = export_job.status == ExportStatus.COMPLETED and export_job.path

    return ExportStatusResponse(
        export_id=export_job.id,
        uuid=export_job.uuid,
        entity_type=export_job.entity_type,
        status=export_job.status,
        progress=export_job.progress,
        total_records=export_job.total_records,
        processed_records=export_job.processed_records,
        file_url=download_url(export_job.id) if completed_with_file else None,
        file_name=export_job.file_name,
        error_message=export_job.error_message,
        created_at=export_job.created_at,
        started_at=export_job.started_at,
        completed_at=export_job.completed_at,
        owner_user_id=export_job.owner_user_id,
    )


@router.get("/{export_id}/download")
def download_export(
    export_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(require_user_id),
    disk_resolver: Callable[[str], object] = Depends(get_disk_resolver),
):
    """
    Download the exported file.

    Returns 404 if export not found or it produced no file, 400 if not yet completed.
    Local files are served directly; S3 files redirect to a presigned URL.
    """
    export_job = _get_owned_job(db, export_id, user_id)

    if export_job.status != ExportStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Export not ready yet. Current status: {export_job.status.value}"
        )

    if not export_job.path:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Export file not found"
        )

    disk = disk_resolver(export_job.disk)
    if not disk.exists(export_job.path):
        logger.error("Export file missing", export_id=export_id, disk=export_job.disk, path=export_job.path)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Export file not found on disk"
        )

    local_path = disk.local_path(export_job.path)
    if local_path is None:
        return RedirectResponse(disk.url(export_job.path))

    extension = export_job.file_name.rsplit(".", 1)[-1]

    return FileResponse(
        path=local_path,
        media_type=MEDIA_TYPES.get(extension, "application/octet-stream"),
        filename=export_job.file_name,
    )
