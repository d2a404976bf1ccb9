"""
Collaborator routes for shared tasks.
"""

import uuid
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from wheeldo.auth import AuthenticatedUser, get_current_user
from wheeldo.database import get_session
from wheeldo.models import User
from wheeldo.routes.deps import notify_after_commit
from wheeldo.schemas import (
    CollaboratorList,
    CollaboratorPermissionUpdate,
    CollaboratorRead,
    UserSummary,
)
from wheeldo.services import sharing
from wheeldo.services.notifications import NotificationDispatcher, get_dispatcher

router = APIRouter()


def _summary(user: User | None) -> UserSummary | None:
    return UserSummary.model_validate(user) if user is not None else None


@router.get("/{task_id}/collaborators", response_model=CollaboratorList)
async def list_collaborators(
    task_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CollaboratorList:
    """Owner and collaborators of a task. Visible to anyone with access."""
    owner, rows = await sharing.list_collaborators(session, user.uid, task_id)
    return CollaboratorList(
        owner=_summary(owner),
        collaborators=[
            CollaboratorRead(
                id=collaborator.id,
                user_id=collaborator.user_id,
                can_edit=collaborator.can_edit,
                created_at=collaborator.created_at,
                user=_summary(member),
            )
            for collaborator, member in rows
        ],
    )


@router.patch("/{task_id}/collaborators/{user_id}", response_model=CollaboratorRead)
async def update_collaborator(
    task_id: uuid.UUID,
    user_id: str,
    permission_in: CollaboratorPermissionUpdate,
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> CollaboratorRead:
    """Switch a collaborator between viewer and editor. Owner only."""
    change = await sharing.update_collaborator_permission(
        session, user.uid, task_id, user_id, permission_in.can_edit
    )
    collaborator = change.collaborator
    member = await session.get(User, collaborator.user_id)
    response = CollaboratorRead(
        id=collaborator.id,
        user_id=collaborator.user_id,
        can_edit=collaborator.can_edit,
        created_at=collaborator.created_at,
        user=_summary(member),
    )
    await notify_after_commit(session, background_tasks, dispatcher, change.notifications)
    return response


@router.delete("/{task_id}/collaborators/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_collaborator(
    task_id: uuid.UUID,
    user_id: str,
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> None:
    """Remove a collaborator. The owner may remove anyone; others only themselves."""
    change = await sharing.remove_collaborator(session, user.uid, task_id, user_id)
    await notify_after_commit(session, background_tasks, dispatcher, change.notifications)
