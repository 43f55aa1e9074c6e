### advanced_export/exports/models.py

"""
Database models for tracking background export jobs.

Stores export job metadata, progress, status and the stored file location.
"""

import uuid as uuid_lib
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from advanced_export.core.db import Base


class ExportStatus(str, PyEnum):
    """Export job status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ExportJob(Base):
    """
    Model for tracking background export jobs.

    Created as PENDING when an export is queued and only mutated by the job
    execution afterwards.
    """
    __tablename__ = "export_jobs"
    __table_args__ = (
        Index("ix_export_jobs_owner_status", "owner_user_id", "status"),
    )

    # Primary Key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    uuid: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        unique=True,
        default=lambda: str(uuid_lib.uuid4()),
        comment="Public identifier of the export job"
    )

    # Export Configuration
    entity_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Registered entity type being exported"
    )

    file_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Generated filename"
    )

    # Job Status
    status: Mapped[ExportStatus] = mapped_column(
        Enum(ExportStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ExportStatus.PENDING,
        comment="Current status of export job"
    )

    # Progress
    total_records: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Total number of records in export"
    )

    processed_records: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Records streamed so far"
    )

    # Results
    disk: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="local",
        comment="Storage disk the file is written to"
    )

    path: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Path of the stored file on its disk"
    )

    # Filter Parameters (stored as JSON)
    filters: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
        comment="Canonical filters applied to the export query"
    )

    # Celery Task Tracking
    celery_task_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Celery task ID for tracking background job"
    )

    # Error Handling
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Error details if export failed"
    )

    # User Tracking
    owner_user_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="User who requested the export"
    )

    # Timestamps
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment="When the current attempt started processing"
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment="When export finished (success or failure)"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        index=True,
        comment="When export was requested"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    @property
    def progress(self) -> Optional[int]:
        """Progress percentage, when the total is known."""
        if self.status == ExportStatus.COMPLETED:
            return 100
        if not self.total_records:
            return None
        return min(100, int(self.processed_records * 100 / self.total_records))

    def __repr__(self):
        return (
            f"<ExportJob(id={self.id}, entity={self.entity_type}, "
            f"status={self.status}, processed={self.processed_records}/{self.total_records})>"
        )
