"""
Task routes for the Wheeldo API.
"""

import uuid
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from wheeldo.auth import AuthenticatedUser, get_current_user
from wheeldo.database import get_session
from wheeldo.models import TaskStatus
from wheeldo.routes.deps import notify_after_commit
from wheeldo.schemas import (
    StatusChangeRead,
    TaskCreate,
    TaskCreated,
    TaskDetail,
    TaskRead,
    TaskStatusUpdate,
    TaskUpdate,
)
from wheeldo.services import task_state, wheel
from wheeldo.services.notifications import NotificationDispatcher, get_dispatcher
from wheeldo.services.task_state import StatusChange
from wheeldo.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def _status_response(
    change: StatusChange,
    user: AuthenticatedUser,
    session: AsyncSession,
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher,
) -> StatusChangeRead:
    detail = await task_state.get_task(session, user.uid, change.task.id)
    await notify_after_commit(session, background_tasks, dispatcher, change.notifications)
    return StatusChangeRead(task=detail, deferred_task_ids=change.deferred_task_ids)


@router.post("/", response_model=TaskCreated, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TaskCreated:
    """
    Create a new task owned by the caller.

    Pass parent_id to create a subtask; the caller needs edit access to
    the parent.
    """
    task = await task_state.create_task(session, user.uid, task_in)
    return TaskCreated(task_id=task.id)


@router.get("/", response_model=list[TaskRead])
async def list_tasks(
    status: TaskStatus | None = None,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[TaskRead]:
    """List root tasks the caller owns or collaborates on."""
    tasks = await task_state.list_tasks(session, user.uid, status)
    logger.debug(f"Listed {len(tasks)} tasks for user={user.uid}")
    return tasks


@router.get("/active", response_model=TaskRead | None)
async def get_active_task(
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TaskRead | None:
    """The caller's IN_PROGRESS task, or null."""
    return await task_state.get_active_task(session, user.uid)


@router.get("/history", response_model=list[TaskRead])
async def list_history(
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[TaskRead]:
    """Completed tasks, most recent first."""
    return await task_state.list_completed_tasks(session, user.uid)


@router.get("/wheel", response_model=list[TaskRead])
async def list_wheel_candidates(
    max_duration: int | None = Query(default=None, ge=1),
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[TaskRead]:
    """Tasks that could be started right now."""
    candidates = await wheel.get_wheel_candidates(session, user.uid, max_duration)
    return await task_state.task_reads(session, candidates, user.uid)


@router.post("/wheel/spin", response_model=TaskRead)
async def spin_wheel(
    max_duration: int | None = Query(default=None, ge=1),
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TaskRead:
    """Pick one candidate at random. Does not start it."""
    picked = await wheel.spin_wheel(session, user.uid, max_duration)
    return (await task_state.task_reads(session, [picked], user.uid))[0]


@router.get("/{task_id}", response_model=TaskDetail)
async def get_task(
    task_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TaskDetail:
    """Get a task with its subtasks and the caller's role."""
    return await task_state.get_task(session, user.uid, task_id)


@router.patch("/{task_id}", response_model=TaskDetail)
async def update_task(
    task_id: uuid.UUID,
    task_in: TaskUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TaskDetail:
    """
    Update task fields.

    Only provided fields are updated. Status changes go through
    PUT /tasks/{id}/status.
    """
    await task_state.update_task(session, user.uid, task_id, task_in)
    return await task_state.get_task(session, user.uid, task_id)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> None:
    """Delete a task and its subtasks. Owner only."""
    await task_state.delete_task(session, user.uid, task_id)


@router.put("/{task_id}/status", response_model=StatusChangeRead)
async def set_task_status(
    task_id: uuid.UUID,
    status_in: TaskStatusUpdate,
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> StatusChangeRead:
    """
    Move a task to PENDING, IN_PROGRESS or COMPLETED.

    Starting a task defers the owner's current one; the ids of deferred
    tasks are returned.
    """
    change = await task_state.set_task_status(session, user.uid, task_id, status_in.status)
    return await _status_response(change, user, session, background_tasks, dispatcher)


@router.post("/{task_id}/start", response_model=StatusChangeRead)
async def start_task(
    task_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> StatusChangeRead:
    change = await task_state.start_task(session, user.uid, task_id)
    return await _status_response(change, user, session, background_tasks, dispatcher)


@router.post("/{task_id}/complete", response_model=StatusChangeRead)
async def complete_task(
    task_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> StatusChangeRead:
    change = await task_state.complete_task(session, user.uid, task_id)
    return await _status_response(change, user, session, background_tasks, dispatcher)


@router.post("/{task_id}/defer", response_model=StatusChangeRead)
async def defer_task(
    task_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> StatusChangeRead:
    change = await task_state.defer_task(session, user.uid, task_id)
    return await _status_response(change, user, session, background_tasks, dispatcher)


@router.post("/{task_id}/revert", response_model=StatusChangeRead)
async def revert_task(
    task_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> StatusChangeRead:
    """Move a completed task back to PENDING."""
    change = await task_state.revert_task(session, user.uid, task_id)
    return await _status_response(change, user, session, background_tasks, dispatcher)
