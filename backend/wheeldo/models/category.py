import uuid
from datetime import datetime
from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field


class Category(SQLModel, table=True):
    """A user-scoped label for tasks. Names are unique per user."""

    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_categories_user_name"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    name: str = Field(max_length=50)
    color: str = Field(default="#6b7280", max_length=7)
    icon: str | None = Field(default=None, max_length=50)

    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime())
