"""
Task authorization.

Roles are never stored. They are derived from the task's owner and its
collaborator rows each time a guarded operation runs:

- owner:  task.user_id == user
- editor: collaborator row with can_edit
- viewer: collaborator row without can_edit
- none:   anything else

Callers resolve access inside the same session/transaction as the write
they are about to make, never reusing a role computed in an earlier
request.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from wheeldo.exceptions import ForbiddenError, NotFoundError
from wheeldo.models import Task, TaskCollaborator


class TaskRole(str, Enum):
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"
    NONE = "none"

    @property
    def can_view(self) -> bool:
        return self is not TaskRole.NONE

    @property
    def can_edit(self) -> bool:
        return self in (TaskRole.OWNER, TaskRole.EDITOR)

    @property
    def is_owner(self) -> bool:
        return self is TaskRole.OWNER


def role_of(
    user_id: str,
    task: Task,
    collaborators: Iterable[TaskCollaborator],
) -> TaskRole:
    """Compute a user's role on a task from a snapshot of its collaborators."""
    if task.user_id == user_id:
        return TaskRole.OWNER

    for collaborator in collaborators:
        if collaborator.task_id == task.id and collaborator.user_id == user_id:
            return TaskRole.EDITOR if collaborator.can_edit else TaskRole.VIEWER

    return TaskRole.NONE


@dataclass
class TaskAccess:
    task: Task
    role: TaskRole


async def resolve_access(
    session: AsyncSession,
    task_id: uuid.UUID,
    user_id: str,
    *,
    for_update: bool = False,
) -> TaskAccess | None:
    """
    Load a task and the user's role on it.

    With for_update the task row is locked for the rest of the
    transaction (no-op on SQLite). Returns None when the task does not
    exist.
    """
    query = select(Task).where(Task.id == task_id)
    if for_update:
        query = query.with_for_update()
    task = (await session.execute(query)).scalar_one_or_none()
    if task is None:
        return None

    result = await session.execute(
        select(TaskCollaborator).where(
            TaskCollaborator.task_id == task_id,
            TaskCollaborator.user_id == user_id,
        )
    )
    return TaskAccess(task=task, role=role_of(user_id, task, result.scalars().all()))


async def require_view(
    session: AsyncSession,
    task_id: uuid.UUID,
    user_id: str,
    *,
    for_update: bool = False,
) -> TaskAccess:
    """Any role; tasks the user cannot see are reported as missing."""
    access = await resolve_access(session, task_id, user_id, for_update=for_update)
    if access is None or not access.role.can_view:
        raise NotFoundError("Task")
    return access


async def require_edit(
    session: AsyncSession,
    task_id: uuid.UUID,
    user_id: str,
    *,
    for_update: bool = False,
) -> TaskAccess:
    """Owner or editor."""
    access = await require_view(session, task_id, user_id, for_update=for_update)
    if not access.role.can_edit:
        raise ForbiddenError("You do not have permission to edit this task")
    return access


async def require_owner(
    session: AsyncSession,
    task_id: uuid.UUID,
    user_id: str,
    *,
    for_update: bool = False,
    message: str = "Only the task owner can perform this action",
) -> TaskAccess:
    """
    Owner only.

    Non-collaborators get NOT_FOUND so the task's existence is not
    revealed; collaborators, who already know the task, get FORBIDDEN.
    """
    access = await require_view(session, task_id, user_id, for_update=for_update)
    if not access.role.is_owner:
        raise ForbiddenError(message)
    return access


async def roles_for_tasks(
    session: AsyncSession,
    tasks: list[Task],
    user_id: str,
) -> dict[uuid.UUID, TaskRole]:
    """Resolve the user's role on many tasks with one collaborator query."""
    if not tasks:
        return {}
    result = await session.execute(
        select(TaskCollaborator).where(
            TaskCollaborator.user_id == user_id,
            TaskCollaborator.task_id.in_([task.id for task in tasks]),
        )
    )
    collaborators = result.scalars().all()
    return {task.id: role_of(user_id, task, collaborators) for task in tasks}
