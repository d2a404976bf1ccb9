import uuid
from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


class TaskInvite(SQLModel, table=True):
    """
    A shareable, time-limited capability on one task.

    The token can be redeemed by any number of users until expires_at;
    redemption never consumes it. Rows go away on revocation or cleanup.
    """

    __tablename__ = "task_invites"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    token: str = Field(unique=True, index=True, max_length=64)
    task_id: uuid.UUID = Field(foreign_key="tasks.id", index=True, ondelete="CASCADE")
    created_by: str = Field(foreign_key="users.id", ondelete="CASCADE")
    can_edit: bool = Field(default=False)
    expires_at: datetime = Field(sa_type=DateTime(), index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime())
