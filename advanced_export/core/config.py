# advanced_export/core/config.py

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from advanced_export.exports.config import (
    ColumnsConfig,
    ExportConfig,
    FileConfig,
    LimitsConfig,
    NotificationsConfig,
    QueueConfig,
    ViewsConfig,
)
from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)


class Settings(BaseSettings):
    """
    Application Settings
    """

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=False
    )

    environment: str = "local"
    log_level: str = "INFO"
    log_json: bool = False

    # Modules registering exportable models (imported on startup)
    export_entity_modules: List[str] = []

    # Database
    database_url: str = "sqlite:///./advanced_export.db"
    database_echo: bool = False

    # Redis base fields (for .env / local)
    redis_host: str = "localhost"
    redis_port: str = "6379"
    redis_username: Optional[str] = None
    redis_password: Optional[str] = None

    # AWS / S3 disk
    aws_region: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    s3_bucket_name: Optional[str] = None
    s3_presigned_url_expiration: int = 3600

    # Local disk
    export_storage_root: str = "/tmp/exports"

    # Export limits
    export_max_records: int = 2000
    export_chunk_size: int = 500
    export_queue_threshold: int = 2000

    # Views
    export_view_path: str = "exports"
    export_view_simple_suffix: str = "-excel"
    export_view_advanced_suffix: str = "-excel-advanced"
    export_use_package_views: bool = False

    # Formatting
    export_date_format: str = "%d/%m/%Y %H:%M"
    export_date_only_format: str = "%d/%m/%Y"
    export_locale: str = "en"

    # File generation
    export_file_extension: str = "xlsx"
    export_file_disk: str = "local"
    export_file_directory: str = "exports"
    export_file_name_format: str = "{resource}_{type}_{datetime}"
    export_file_datetime_format: str = "%Y-%m-%d_%H-%M-%S"

    # Column bounds
    export_columns_max_default: int = 5
    export_columns_max_selectable: int = 20
    export_columns_min_required: int = 1

    # Fallback column and filter sets
    export_fallback_columns: Dict[str, str] = {"id": "ID", "created_at": "Created At", "updated_at": "Updated At"}
    export_default_filters: List[str] = ["created_at", "updated_at", "created_by"]
    export_fallback_filters: List[str] = ["created_at", "updated_at", "created_by", "status"]

    # Queue
    export_queue_enabled: bool = True
    export_queue_connection: str = "default"
    export_queue_name: str = "exports"
    export_queue_tries: int = 3
    export_queue_timeout: int = 600
    export_queue_retry_delay: int = 30

    # Notifications
    export_show_success: bool = True
    export_show_no_data: bool = True
    export_show_errors: bool = True
    export_show_queued: bool = True
    export_notify_on_completion: bool = True
    export_notify_on_failure: bool = True

    #
    # ---------------------------
    #  REDIS ACCESS PROPERTIES
    # ---------------------------
    #
    @property
    def redis_url(self) -> str:
        """Construct the Redis URL."""
        host = self.redis_host or "localhost"
        port = self.redis_port or "6379"

        if self.redis_username and self.redis_password:
            return f"redis://{self.redis_username}:{self.redis_password}@{host}:{port}"
        elif self.redis_password:
            return f"redis://:{self.redis_password}@{host}:{port}"
        return f"redis://{host}:{port}"

    @property
    def celery_broker(self) -> str:
        """Celery broker URL"""
        return f"{self.redis_url}/1"

    @property
    def celery_backend(self) -> str:
        """Celery result backend URL"""
        return f"{self.redis_url}/2"

    #
    # ---------------------------
    #  EXPORT CONFIGURATION
    # ---------------------------
    #
    def export_config(self) -> ExportConfig:
        """Build the immutable export configuration from the flat settings."""
        return ExportConfig(
            limits=LimitsConfig(
                max_records=self.export_max_records,
                chunk_size=self.export_chunk_size,
                queue_threshold=self.export_queue_threshold,
            ),
            views=ViewsConfig(
                path=self.export_view_path,
                simple_suffix=self.export_view_simple_suffix,
                advanced_suffix=self.export_view_advanced_suffix,
                use_package_views=self.export_use_package_views,
            ),
            file=FileConfig(
                extension=self.export_file_extension,
                disk=self.export_file_disk,
                directory=self.export_file_directory,
                name_format=self.export_file_name_format,
                datetime_format=self.export_file_datetime_format,
            ),
            columns=ColumnsConfig(
                max_default=self.export_columns_max_default,
                max_selectable=self.export_columns_max_selectable,
                min_required=self.export_columns_min_required,
            ),
            queue=QueueConfig(
                enabled=self.export_queue_enabled,
                connection=self.export_queue_connection,
                name=self.export_queue_name,
                tries=self.export_queue_tries,
                timeout=self.export_queue_timeout,
                retry_delay=self.export_queue_retry_delay,
            ),
            notifications=NotificationsConfig(
                show_success=self.export_show_success,
                show_no_data=self.export_show_no_data,
                show_errors=self.export_show_errors,
                show_queued=self.export_show_queued,
                notify_on_completion=self.export_notify_on_completion,
                notify_on_failure=self.export_notify_on_failure,
            ),
            date_format=self.export_date_format,
            date_only_format=self.export_date_only_format,
            locale=self.export_locale,
            fallback_columns=dict(self.export_fallback_columns),
            default_filters=list(self.export_default_filters),
            fallback_filters=list(self.export_fallback_filters),
        )


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()


@lru_cache
def get_export_config() -> ExportConfig:
    """The process-wide export configuration, built once."""
    config = get_settings().export_config()
    logger.info(
        "Export configuration loaded",
        max_records=config.limits.max_records,
        chunk_size=config.limits.chunk_size,
        queue_threshold=config.limits.queue_threshold,
        queue_enabled=config.queue.enabled,
    )
    return config


settings = get_settings()
