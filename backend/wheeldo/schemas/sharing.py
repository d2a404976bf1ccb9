import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class InviteCreate(BaseModel):
    """Schema for creating an invite; viewers unless can_edit is set."""
    can_edit: bool = False


class InviteRead(BaseModel):
    id: uuid.UUID
    token: str
    can_edit: bool
    expires_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class InviteCreated(InviteRead):
    url: str


class InviterRead(BaseModel):
    id: str
    name: str | None
    image: str | None


class InvitePreview(BaseModel):
    """What an unauthenticated visitor may see about a valid invite."""
    valid: Literal[True] = True
    task_title: str
    can_edit: bool
    invited_by: InviterRead
    expires_at: datetime


class InviteAccepted(BaseModel):
    task_id: uuid.UUID
    task_title: str
    already_collaborator: bool


class UserSummary(BaseModel):
    id: str
    name: str | None
    email: str | None
    image: str | None

    model_config = {"from_attributes": True}


class CollaboratorRead(BaseModel):
    id: uuid.UUID
    user_id: str
    can_edit: bool
    created_at: datetime
    user: UserSummary | None = None


class CollaboratorList(BaseModel):
    owner: UserSummary | None
    collaborators: list[CollaboratorRead]


class CollaboratorPermissionUpdate(BaseModel):
    can_edit: bool
