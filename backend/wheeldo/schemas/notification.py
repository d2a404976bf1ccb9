import uuid
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field

from wheeldo.models import NotificationType


class NotificationRead(BaseModel):
    id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    read: bool
    task_id: uuid.UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationList(BaseModel):
    notifications: list[NotificationRead]
    unread_count: int


class MarkNotificationsRead(BaseModel):
    notification_ids: Annotated[list[uuid.UUID], Field(min_length=1, max_length=100)]


class CountResult(BaseModel):
    count: int
