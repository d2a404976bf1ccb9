import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Index, text
from sqlmodel import SQLModel, Field


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    DEFERRED = "DEFERRED"  # reserved, no transition produces it


class Effort(str, Enum):
    MINIMAL = "MINIMAL"
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RecurrenceType(str, Enum):
    NONE = "NONE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


_IN_PROGRESS_ONLY = text("status = 'IN_PROGRESS'")


class Task(SQLModel, table=True):
    """
    Task model.

    Key rules enforced by the service layer:
    - parent_id may only point at a root task (hierarchy depth <= 2)
    - subtasks never recur
    - completed_at is set exactly while status is COMPLETED

    The partial unique index backs the "one IN_PROGRESS task per owner"
    rule at the database level, so two concurrent starts cannot both
    commit.
    """

    __tablename__ = "tasks"
    __table_args__ = (
        Index(
            "uq_tasks_one_in_progress_per_user",
            "user_id",
            unique=True,
            postgresql_where=_IN_PROGRESS_ONLY,
            sqlite_where=_IN_PROGRESS_ONLY,
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    title: str = Field(max_length=200)
    body: str | None = Field(default=None, max_length=10000)
    duration: int | None = Field(default=None, ge=1, le=1440)  # minutes

    # Structured location, all parts optional
    location_address: str | None = Field(default=None)
    location_lat: float | None = Field(default=None)
    location_lon: float | None = Field(default=None)
    location_city: str | None = Field(default=None)
    location_country: str | None = Field(default=None)
    location_place_id: str | None = Field(default=None)

    effort: Effort = Field(default=Effort.MODERATE)
    urgency: Urgency = Field(default=Urgency.MEDIUM)
    deadline: datetime | None = Field(default=None, sa_type=DateTime())
    status: TaskStatus = Field(default=TaskStatus.PENDING, index=True)
    recurrence_type: RecurrenceType = Field(default=RecurrenceType.NONE)
    position: int = Field(default=0)
    completed_at: datetime | None = Field(default=None, sa_type=DateTime())

    # Foreign keys
    user_id: str = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    parent_id: uuid.UUID | None = Field(
        default=None, foreign_key="tasks.id", index=True, ondelete="CASCADE"
    )
    category_id: uuid.UUID | None = Field(
        default=None, foreign_key="categories.id", ondelete="SET NULL"
    )

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime())
