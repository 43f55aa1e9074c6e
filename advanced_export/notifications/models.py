### advanced_export/notifications/models.py

"""
Database model for user-visible notifications about exports.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from advanced_export.core.db import Base


class UserNotification(Base):
    """
    Notification delivered to a user's inbox (job completed, job failed...).
    """
    __tablename__ = "export_notifications"
    __table_args__ = (
        Index("ix_export_notifications_user_read", "user_id", "read_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Recipient user"
    )

    event: Mapped[str] = mapped_column(
        String(50), nullable=False, comment="Notification event key"
    )

    level: Mapped[str] = mapped_column(
        String(20), nullable=False, comment="success, info, warning or danger"
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    body: Mapped[str] = mapped_column(Text, nullable=False)

    action_url: Mapped[Optional[str]] = mapped_column(
        String(1000), nullable=True, comment="Download link for completed exports"
    )

    action_label: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def __repr__(self):
        return f"<UserNotification(id={self.id}, user_id={self.user_id}, event={self.event})>"
