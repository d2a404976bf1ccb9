import uuid
from datetime import datetime
from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field


class TaskCollaborator(SQLModel, table=True):
    """
    Grants a non-owner user access to a task.

    can_edit=True makes the user an editor, otherwise a viewer.
    """

    __tablename__ = "task_collaborators"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_collaborators_task_user"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    task_id: uuid.UUID = Field(foreign_key="tasks.id", index=True, ondelete="CASCADE")
    user_id: str = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    can_edit: bool = Field(default=False)
    invited_by: str | None = Field(default=None, foreign_key="users.id", ondelete="SET NULL")

    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime())
