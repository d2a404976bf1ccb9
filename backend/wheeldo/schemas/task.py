import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, Field, StringConstraints, computed_field

from wheeldo.models import TaskStatus, Effort, Urgency, RecurrenceType


Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
Body = Annotated[str, StringConstraints(strip_whitespace=True, max_length=10000)]
Duration = Annotated[int, Field(ge=1, le=1440)]  # minutes


def _as_naive_utc(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


Deadline = Annotated[datetime, AfterValidator(_as_naive_utc)]


class Location(BaseModel):
    """Structured place; every part is optional."""
    formatted_address: str | None = Field(default=None, max_length=500)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lon: float | None = Field(default=None, ge=-180, le=180)
    city: str | None = Field(default=None, max_length=200)
    country: str | None = Field(default=None, max_length=200)
    place_id: str | None = Field(default=None, max_length=300)


class TaskCreate(BaseModel):
    """Schema for creating a new task."""
    title: Title
    body: Body | None = None
    duration: Duration | None = None
    location: Location | None = None
    effort: Effort = Effort.MODERATE
    urgency: Urgency = Urgency.MEDIUM
    deadline: Deadline | None = None
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    parent_id: uuid.UUID | None = None
    category_id: uuid.UUID | None = None


class TaskUpdate(BaseModel):
    """
    Schema for patching a task.

    Only fields present in the request are applied. Status is not part of
    the patch; it changes through the status endpoints.
    """
    title: Title | None = None
    body: Body | None = None
    duration: Duration | None = None
    location: Location | None = None
    effort: Effort | None = None
    urgency: Urgency | None = None
    deadline: Deadline | None = None
    recurrence_type: RecurrenceType | None = None
    position: int | None = Field(default=None, ge=0)
    parent_id: uuid.UUID | None = None
    category_id: uuid.UUID | None = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class TaskRead(BaseModel):
    """Schema for reading a task, as seen by one actor."""
    id: uuid.UUID
    title: str
    body: str | None
    duration: int | None
    location: Location | None = None
    effort: Effort
    urgency: Urgency
    deadline: datetime | None
    status: TaskStatus
    recurrence_type: RecurrenceType
    position: int
    completed_at: datetime | None
    user_id: str
    parent_id: uuid.UUID | None
    category_id: uuid.UUID | None
    created_at: datetime
    updated_at: datetime

    role: Literal["owner", "editor", "viewer"] | None = None
    children_count: int = 0
    completed_children_count: int = 0

    @computed_field
    @property
    def is_subtask(self) -> bool:
        return self.parent_id is not None

    model_config = {"from_attributes": True}


class TaskDetail(TaskRead):
    """Task with its subtasks."""
    children: list[TaskRead] = []


class TaskCreated(BaseModel):
    task_id: uuid.UUID


class StatusChangeRead(BaseModel):
    """Result of a status transition."""
    task: TaskDetail
    deferred_task_ids: list[uuid.UUID] = []
