import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


class NotificationType(str, Enum):
    TASK_SHARED = "TASK_SHARED"
    COLLABORATOR_JOINED = "COLLABORATOR_JOINED"
    COLLABORATOR_LEFT = "COLLABORATOR_LEFT"
    TASK_COMPLETED = "TASK_COMPLETED"


class Notification(SQLModel, table=True):
    """In-app notification for a single recipient."""

    __tablename__ = "notifications"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    type: NotificationType
    title: str = Field(max_length=200)
    message: str = Field(max_length=1000)
    read: bool = Field(default=False, index=True)
    task_id: uuid.UUID | None = Field(default=None, foreign_key="tasks.id", ondelete="SET NULL")

    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime(), index=True)
