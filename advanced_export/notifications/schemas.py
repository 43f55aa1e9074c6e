## advanced_export/notifications/schemas.py

# Standard library imports
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

# Third party imports
from pydantic import BaseModel, ConfigDict


class NotificationLevel(str, PyEnum):
    """
    Visual level of a notification
    """
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"


class NotificationEvent(str, PyEnum):
    """
    Export notification events
    """
    SUCCESS = "SUCCESS"
    NO_DATA = "NO_DATA"
    ERROR = "ERROR"
    QUEUED = "QUEUED"
    JOB_COMPLETED = "JOB_COMPLETED"
    JOB_FAILED = "JOB_FAILED"


class NotificationMessage(BaseModel):
    """
    A rendered notification, returned inline or persisted for a user.
    """
    event: NotificationEvent
    level: NotificationLevel
    title: str
    body: str
    action_url: Optional[str] = None
    action_label: Optional[str] = None


class UserNotificationRead(BaseModel):
    """
    Persisted notification as exposed by the API.
    """
    model_config = ConfigDict(from_attributes=True)

    id: int
    event: str
    level: str
    title: str
    body: str
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    read_at: Optional[datetime] = None
    created_at: datetime
