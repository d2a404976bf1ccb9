from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Local mirror of an identity-provider user.

    The primary key is the provider's uid. Rows are upserted on every
    authenticated request so names and emails stay current for
    notification messages.
    """

    __tablename__ = "users"

    id: str = Field(primary_key=True, max_length=128)
    email: str | None = Field(default=None, index=True)
    name: str | None = Field(default=None)
    image: str | None = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime())

    @property
    def display_name(self) -> str | None:
        return self.name or self.email
