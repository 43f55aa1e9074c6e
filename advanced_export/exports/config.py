### advanced_export/exports/config.py

"""
Immutable export configuration.

Built once at startup from the application settings and passed explicitly to
every export component.
"""

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class LimitsConfig(_Frozen):
    """Record limits and chunking"""
    max_records: int = Field(2000, ge=1)
    chunk_size: int = Field(500, ge=1)
    queue_threshold: int = Field(2000, ge=0)


class ViewsConfig(_Frozen):
    """Render-template naming"""
    path: str = "exports"
    simple_suffix: str = "-excel"
    advanced_suffix: str = "-excel-advanced"
    use_package_views: bool = False


class FileConfig(_Frozen):
    """Generated file naming and storage location"""
    extension: str = "xlsx"
    disk: str = "local"
    directory: str = "exports"
    name_format: str = "{resource}_{type}_{datetime}"
    datetime_format: str = "%Y-%m-%d_%H-%M-%S"


class ColumnsConfig(_Frozen):
    """Column selection bounds"""
    max_default: int = Field(5, ge=1)
    max_selectable: int = Field(20, ge=1)
    min_required: int = Field(1, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.min_required > self.max_selectable:
            raise ValueError("columns.min_required cannot exceed columns.max_selectable")
        return self


class QueueConfig(_Frozen):
    """Background job settings"""
    enabled: bool = True
    connection: str = "default"
    name: str = "exports"
    tries: int = Field(3, ge=1)
    timeout: int = Field(600, ge=1)
    retry_delay: int = Field(30, ge=0)


class NotificationsConfig(_Frozen):
    """Per-event notification toggles"""
    show_success: bool = True
    show_no_data: bool = True
    show_errors: bool = True
    show_queued: bool = True
    notify_on_completion: bool = True
    notify_on_failure: bool = True


class ExportConfig(_Frozen):
    """
    Complete export configuration.

    Defaults: 2000 records, 500 per chunk, background processing above 2000
    matches.
    """
    limits: LimitsConfig = LimitsConfig()
    views: ViewsConfig = ViewsConfig()
    file: FileConfig = FileConfig()
    columns: ColumnsConfig = ColumnsConfig()
    queue: QueueConfig = QueueConfig()
    notifications: NotificationsConfig = NotificationsConfig()

    date_format: str = "%d/%m/%Y %H:%M"
    date_only_format: str = "%d/%m/%Y"
    locale: str = "en"

    # Used when a model does not declare export columns
    fallback_columns: Dict[str, str] = Field(
        default_factory=lambda: {
            "id": "ID",
            "created_at": "Created At",
            "updated_at": "Updated At",
        }
    )

    # Generic filters sent for every entity; dropped quietly where they do not apply
    default_filters: List[str] = Field(
        default_factory=lambda: ["created_at", "updated_at", "created_by"]
    )

    # Re-read directly from the raw input when filter extraction fails
    fallback_filters: List[str] = Field(
        default_factory=lambda: ["created_at", "updated_at", "created_by", "status"]
    )
