"""
Invite routes: issuing links under /tasks and redeeming them under /invites.
"""

import uuid
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from wheeldo.auth import AuthenticatedUser, get_current_user
from wheeldo.database import get_session
from wheeldo.exceptions import InviteExpiredError, NotFoundError
from wheeldo.models import TaskInvite
from wheeldo.routes.deps import notify_after_commit
from wheeldo.schemas import (
    InviteAccepted,
    InviteCreate,
    InviteCreated,
    InvitePreview,
    InviteRead,
    InviterRead,
)
from wheeldo.services import sharing
from wheeldo.services.notifications import NotificationDispatcher, get_dispatcher
from wheeldo.services.users import display_name
from wheeldo.logging_config import get_logger

logger = get_logger(__name__)

task_router = APIRouter()
router = APIRouter()


def _created(invite: TaskInvite) -> InviteCreated:
    return InviteCreated(
        **InviteRead.model_validate(invite).model_dump(),
        url=sharing.invite_url(invite.token),
    )


@task_router.get("/{task_id}/invites", response_model=list[InviteRead])
async def list_invites(
    task_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[TaskInvite]:
    """Unexpired invites for a task. Owner only."""
    return await sharing.list_invites(session, user.uid, task_id)


@task_router.post(
    "/{task_id}/invites",
    response_model=InviteCreated,
    status_code=status.HTTP_201_CREATED,
)
async def create_invite(
    task_id: uuid.UUID,
    invite_in: InviteCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> InviteCreated:
    """Issue a shareable link granting view (or edit) access. Owner only."""
    invite = await sharing.create_invite(session, user.uid, task_id, invite_in.can_edit)
    return _created(invite)


@task_router.delete("/{task_id}/invites/{invite_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_invite(
    task_id: uuid.UUID,
    invite_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> None:
    await sharing.revoke_invite(session, user.uid, invite_id, task_id=task_id)


@router.get("/{token}", response_model=InvitePreview)
async def preview_invite(
    token: str,
    session: AsyncSession = Depends(get_session),
) -> InvitePreview:
    """
    Check an invite link before signing in.

    Unknown tokens are 404, expired ones 410.
    """
    check = await sharing.validate_invite(session, token)
    if not check.valid:
        if check.expired:
            raise InviteExpiredError()
        raise NotFoundError("Invite", check.reason)

    creator = check.creator
    return InvitePreview(
        task_title=check.task.title,
        can_edit=check.invite.can_edit,
        invited_by=InviterRead(
            id=check.invite.created_by,
            name=display_name(creator, "Someone"),
            image=creator.image if creator else None,
        ),
        expires_at=check.invite.expires_at,
    )


@router.post("/{token}/accept", response_model=InviteAccepted)
async def accept_invite(
    token: str,
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> InviteAccepted:
    """Join the invite's task as a collaborator."""
    result = await sharing.accept_invite(session, user.uid, token)
    response = InviteAccepted(
        task_id=result.task.id,
        task_title=result.task.title,
        already_collaborator=result.already_collaborator,
    )
    await notify_after_commit(session, background_tasks, dispatcher, result.notifications)
    return response
