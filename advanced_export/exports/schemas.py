### advanced_export/exports/schemas.py

"""
Pydantic schemas for export API requests and responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from advanced_export.exports.models import ExportStatus
from advanced_export.notifications.schemas import NotificationMessage


class ColumnSelection(BaseModel):
    """One selected export column"""

    field: str = Field(..., min_length=1, description="Exportable field, dotted paths allowed")
    title: Optional[str] = Field(None, description="Header title; defaults to the field label")


class ExportRequestBody(BaseModel):
    """Request schema for exporting an entity"""

    filters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Raw filter state keyed by filter name"
    )

    columns: Optional[List[ColumnSelection]] = Field(
        None,
        description="Selected columns for an advanced export; omit for a simple export, [] for the defaults"
    )

    order_column: str = Field("created_at", description="Field to sort by")

    order_direction: str = Field("desc", description="asc or desc")

    format: Optional[Literal["xlsx", "csv"]] = Field(
        None,
        description="Output format; defaults to the configured file extension"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "filters": {
                    "created_at": {"from": "2024-01-01", "until": "2024-01-31"},
                    "status": {"values": ["active", "pending"]},
                },
                "columns": [
                    {"field": "id", "title": "ID"},
                    {"field": "name", "title": "Name"},
                ],
                "order_column": "created_at",
                "order_direction": "desc",
            }
        }
    )


class ExportQueuedResponse(BaseModel):
    """Response schema for an export handed to the background queue"""

    status: Literal["queued"] = "queued"

    export_id: int = Field(..., description="Unique export job ID")

    file_name: str = Field(..., description="Name the generated file will have")

    estimated_records: Optional[int] = Field(None, description="Records the job is expected to export")

    status_url: str = Field(..., description="URL to check export status")

    notifications: List[NotificationMessage] = Field(default_factory=list)


class NoDataResponse(BaseModel):
    """Response schema when the export matched no records"""

    status: Literal["no_data"] = "no_data"

    message: str

    notifications: List[NotificationMessage] = Field(default_factory=list)


class ExportErrorResponse(BaseModel):
    """Response schema for a synchronous export that failed"""

    status: Literal["error"] = "error"

    message: str

    notifications: List[NotificationMessage] = Field(default_factory=list)


class ExportStatusResponse(BaseModel):
    """Response schema for export status check"""

    export_id: int = Field(..., description="Export job ID")

    uuid: str = Field(..., description="Public job identifier")

    entity_type: str = Field(..., description="Exported entity type")

    status: ExportStatus = Field(..., description="Current status")

    progress: Optional[int] = Field(
        None,
        description="Progress percentage (0-100), if available",
        ge=0,
        le=100
    )

    total_records: Optional[int] = Field(None, description="Total number of records in export")

    processed_records: int = Field(0, description="Records streamed so far")

    file_url: Optional[str] = Field(None, description="Download URL (available when status is completed)")

    file_name: Optional[str] = Field(None, description="Generated filename")

    error_message: Optional[str] = Field(None, description="Error details (if status is failed)")

    created_at: datetime = Field(..., description="When export was requested")

    started_at: Optional[datetime] = None

    completed_at: Optional[datetime] = Field(None, description="When export finished")

    owner_user_id: Optional[int] = Field(None, description="User ID who requested the export")


class ExportListItem(BaseModel):
    """Schema for a single export in list view"""

    export_id: int
    entity_type: str
    status: ExportStatus
    total_records: Optional[int]
    file_name: Optional[str]
    created_at: datetime
    completed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class PaginatedExportListResponse(BaseModel):
    """Response schema for paginated export list"""

    items: list[ExportListItem] = Field(..., description="List of exports")

    total_items: int = Field(..., description="Total number of exports")

    page: int = Field(..., description="Current page number")

    per_page: int = Field(..., description="Items per page")

    total_pages: int = Field(..., description="Total number of pages")
