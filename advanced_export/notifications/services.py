## advanced_export/notifications/services.py

from typing import List, Optional, Protocol

from sqlalchemy.orm import Session

from advanced_export.exports.config import ExportConfig
from advanced_export.exports.messages import get_message
from advanced_export.notifications.models import UserNotification
from advanced_export.notifications.schemas import (
    NotificationEvent,
    NotificationLevel,
    NotificationMessage,
)
from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)


class NotificationBackend(Protocol):
    """Delivers a rendered notification."""

    def send(self, message: NotificationMessage, user_id: Optional[int] = None) -> None:
        ...


class InlineNotificationBackend:
    """
    Collects notifications raised while handling a request so they can be
    returned with the response.
    """

    def __init__(self):
        self.messages: List[NotificationMessage] = []

    def send(self, message: NotificationMessage, user_id: Optional[int] = None) -> None:
        self.messages.append(message)


class DatabaseNotificationBackend:
    """
    Persists notifications to the user's inbox.
    """

    def __init__(self, db: Session):
        self.db = db

    def send(self, message: NotificationMessage, user_id: Optional[int] = None) -> None:
        if user_id is None:
            logger.info("No user ID provided, skipping notification", notification_event=message.event.value)
            return

        notification = UserNotification(
            user_id=user_id,
            event=message.event.value,
            level=message.level.value,
            title=message.title,
            body=message.body,
            action_url=message.action_url,
            action_label=message.action_label,
        )
        self.db.add(notification)
        self.db.commit()
        logger.info("Notification sent to user", user_id=user_id, notification_event=message.event.value)


class ExportNotifier:
    """
    Builds and delivers export notifications, honouring the per-event toggles.

    Every method returns the message it delivered, or None when the event is
    disabled.
    """

    def __init__(self, config: ExportConfig, backend: NotificationBackend):
        self.config = config
        self.backend = backend

    def _msg(self, key: str, **params) -> str:
        return get_message(key, self.config.locale, **params)

    def _deliver(self, message: NotificationMessage, user_id: Optional[int] = None) -> NotificationMessage:
        self.backend.send(message, user_id)
        return message

    def no_data(self, user_id: Optional[int] = None) -> Optional[NotificationMessage]:
        """Show notification when no data is found for export."""
        if not self.config.notifications.show_no_data:
            return None
        return self._deliver(
            NotificationMessage(
                event=NotificationEvent.NO_DATA,
                level=NotificationLevel.WARNING,
                title=self._msg("no_data.title"),
                body=self._msg("no_data.body"),
            ),
            user_id,
        )

    def success(self, count: int, user_id: Optional[int] = None) -> Optional[NotificationMessage]:
        """Show success notification after a synchronous export."""
        if not self.config.notifications.show_success:
            return None
        return self._deliver(
            NotificationMessage(
                event=NotificationEvent.SUCCESS,
                level=NotificationLevel.SUCCESS,
                title=self._msg("success.title"),
                body=self._msg("success.body", count=count),
            ),
            user_id,
        )

    def queued(self, user_id: Optional[int] = None) -> Optional[NotificationMessage]:
        """Show notification when export is queued for background processing."""
        if not self.config.notifications.show_queued:
            return None
        return self._deliver(
            NotificationMessage(
                event=NotificationEvent.QUEUED,
                level=NotificationLevel.INFO,
                title=self._msg("queued.title"),
                body=self._msg("queued.body"),
            ),
            user_id,
        )

    def error(self, message: str, user_id: Optional[int] = None) -> Optional[NotificationMessage]:
        """Show notification when a synchronous export fails."""
        if not self.config.notifications.show_errors:
            return None
        return self._deliver(
            NotificationMessage(
                event=NotificationEvent.ERROR,
                level=NotificationLevel.DANGER,
                title=self._msg("error.title"),
                body=self._msg("error.body", message=message),
            ),
            user_id,
        )

    def job_completed(
        self, user_id: Optional[int], download_url: str, records: int, file_name: str
    ) -> Optional[NotificationMessage]:
        """Tell the owner a background export is ready for download."""
        if not self.config.notifications.notify_on_completion:
            return None
        return self._deliver(
            NotificationMessage(
                event=NotificationEvent.JOB_COMPLETED,
                level=NotificationLevel.SUCCESS,
                title=self._msg("job_complete.title"),
                body=self._msg("job_complete.body", records=f"{records:,}", filename=file_name),
                action_url=download_url,
                action_label=self._msg("job_complete.download"),
            ),
            user_id,
        )

    def job_failed(self, user_id: Optional[int], file_name: str) -> Optional[NotificationMessage]:
        """Tell the owner a background export failed."""
        if not self.config.notifications.notify_on_failure:
            return None
        return self._deliver(
            NotificationMessage(
                event=NotificationEvent.JOB_FAILED,
                level=NotificationLevel.DANGER,
                title=self._msg("job_failed.title"),
                body=self._msg("job_failed.body", filename=file_name),
            ),
            user_id,
        )
