"""
Task state machine.

Every mutation in this module:
1. re-resolves the actor's role inside the caller's transaction
2. evaluates all guards (permission, hierarchy, recurrence, single
   active task) before writing anything
3. writes through the same session, so guards and writes commit or roll
   back together

Status transitions:

    PENDING <-> IN_PROGRESS <-> COMPLETED      (any edge, edit access)

- IN_PROGRESS / COMPLETED require every subtask to be COMPLETED.
- IN_PROGRESS defers the owner's other IN_PROGRESS task back to PENDING.
- completed_at is set on entering COMPLETED and cleared on leaving it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from wheeldo.exceptions import ConflictError, ForbiddenError, ValidationError
from wheeldo.models import (
    Category,
    Notification,
    NotificationType,
    RecurrenceType,
    Task,
    TaskCollaborator,
    TaskInvite,
    TaskStatus,
    Urgency,
    User,
)
from wheeldo.schemas import Location, TaskCreate, TaskDetail, TaskRead, TaskUpdate
from wheeldo.services.authorization import (
    TaskRole,
    require_edit,
    require_owner,
    require_view,
    resolve_access,
    roles_for_tasks,
)
from wheeldo.services.notifications import NotificationDraft, collaborator_drafts
from wheeldo.services.users import display_name
from wheeldo.logging_config import get_logger

logger = get_logger(__name__)


SUBTASKS_INCOMPLETE = "Complete all subtasks first before starting or completing this task"
ANOTHER_IN_PROGRESS = "Another task is already in progress. Please complete or defer it first."

# Fields that may be patched but never set to null
NON_NULLABLE_FIELDS = ("title", "effort", "urgency", "recurrence_type", "position")

LOCATION_COLUMNS = {
    "formatted_address": "location_address",
    "lat": "location_lat",
    "lon": "location_lon",
    "city": "location_city",
    "country": "location_country",
    "place_id": "location_place_id",
}


@dataclass
class StatusChange:
    task: Task
    previous_status: TaskStatus
    deferred_task_ids: list[uuid.UUID] = field(default_factory=list)
    notifications: list[NotificationDraft] = field(default_factory=list)


# =============================================================================
# Helpers
# =============================================================================

def _location_values(location: dict | None) -> dict:
    location = location or {}
    return {column: location.get(key) for key, column in LOCATION_COLUMNS.items()}


def _location_of(task: Task) -> Location | None:
    values = {key: getattr(task, column) for key, column in LOCATION_COLUMNS.items()}
    if all(value is None for value in values.values()):
        return None
    return Location(**values)


def to_task_read(
    task: Task,
    role: TaskRole | None = None,
    counts: tuple[int, int] = (0, 0),
) -> TaskRead:
    data = task.model_dump(exclude=set(LOCATION_COLUMNS.values()))
    return TaskRead(
        **data,
        location=_location_of(task),
        role=role.value if role and role.can_view else None,
        children_count=counts[0],
        completed_children_count=counts[1],
    )


async def child_counts(
    session: AsyncSession,
    task_ids: list[uuid.UUID],
) -> dict[uuid.UUID, tuple[int, int]]:
    """(total, completed) subtask counts per parent."""
    if not task_ids:
        return {}
    result = await session.execute(
        select(Task.parent_id, Task.status, func.count())
        .where(Task.parent_id.in_(task_ids))
        .group_by(Task.parent_id, Task.status)
    )
    counts: dict[uuid.UUID, tuple[int, int]] = {}
    for parent_id, status, count in result.all():
        total, completed = counts.get(parent_id, (0, 0))
        total += count
        if status == TaskStatus.COMPLETED:
            completed += count
        counts[parent_id] = (total, completed)
    return counts


async def _has_children(session: AsyncSession, task_id: uuid.UUID) -> bool:
    result = await session.execute(select(Task.id).where(Task.parent_id == task_id).limit(1))
    return result.first() is not None


async def _children_complete(session: AsyncSession, task_id: uuid.UUID) -> bool:
    """True when every subtask is COMPLETED (vacuously true with none)."""
    result = await session.execute(
        select(Task.id)
        .where(Task.parent_id == task_id, Task.status != TaskStatus.COMPLETED)
        .limit(1)
    )
    return result.first() is None


async def _next_position(session: AsyncSession, user_id: str, parent_id: uuid.UUID | None) -> int:
    query = select(func.max(Task.position)).where(Task.user_id == user_id)
    if parent_id is None:
        query = query.where(Task.parent_id.is_(None))
    else:
        query = query.where(Task.parent_id == parent_id)
    current = (await session.execute(query)).scalar_one_or_none()
    return (current or 0) + 1


async def _validate_parent(session: AsyncSession, actor_id: str, parent_id: uuid.UUID) -> Task:
    """A parent must exist, be root level, not recur, and be editable by the actor."""
    access = await resolve_access(session, parent_id, actor_id)
    if access is None or not access.role.can_edit:
        raise ForbiddenError("Invalid parent task")

    parent = access.task
    if parent.parent_id is not None:
        raise ValidationError("Subtasks cannot have their own subtasks", field="parent_id")
    if parent.recurrence_type != RecurrenceType.NONE:
        raise ValidationError("Recurring tasks cannot have subtasks", field="parent_id")
    return parent


async def _validate_category(session: AsyncSession, owner_id: str, category_id: uuid.UUID) -> None:
    category = await session.get(Category, category_id)
    if category is None or category.user_id != owner_id:
        raise ForbiddenError("Invalid category")


# =============================================================================
# Mutations
# =============================================================================

async def create_task(session: AsyncSession, actor_id: str, data: TaskCreate) -> Task:
    """Create a task owned by the actor, optionally as a subtask."""
    if data.parent_id is not None:
        if data.recurrence_type != RecurrenceType.NONE:
            raise ValidationError("Subtasks cannot be recurring", field="recurrence_type")
        await _validate_parent(session, actor_id, data.parent_id)

    if data.category_id is not None:
        await _validate_category(session, actor_id, data.category_id)

    task_data = data.model_dump(exclude={"location"})
    task = Task(
        **task_data,
        **_location_values(data.location.model_dump() if data.location else None),
        user_id=actor_id,
        position=await _next_position(session, actor_id, data.parent_id),
    )
    session.add(task)
    await session.flush()
    await session.refresh(task)

    logger.info(
        f"Created task: id={task.id} title='{task.title}' user={actor_id}"
        + (f" parent={task.parent_id}" if task.parent_id else "")
    )
    return task


async def update_task(
    session: AsyncSession,
    actor_id: str,
    task_id: uuid.UUID,
    data: TaskUpdate,
) -> Task:
    """
    Patch task fields.

    Editors may change content fields; category and parent belong to the
    owner. Hierarchy and recurrence rules are re-checked against the
    patched state before anything is written.
    """
    access = await require_edit(session, task_id, actor_id, for_update=True)
    task = access.task

    update_data = data.model_dump(exclude_unset=True)

    if not access.role.is_owner and ("category_id" in update_data or "parent_id" in update_data):
        logger.warning(f"Editor {actor_id} tried to change category/parent of task {task_id}")
        raise ForbiddenError("Only owners can change category or parent")

    for name in NON_NULLABLE_FIELDS:
        if name in update_data and update_data[name] is None:
            raise ValidationError(f"{name} cannot be null", field=name)

    if update_data.get("category_id") is not None:
        await _validate_category(session, task.user_id, update_data["category_id"])

    has_children = await _has_children(session, task_id)

    moving = "parent_id" in update_data and update_data["parent_id"] != task.parent_id
    new_parent_id = update_data.get("parent_id", task.parent_id)
    if moving and new_parent_id is not None:
        if new_parent_id == task.id:
            raise ValidationError("A task cannot be its own parent", field="parent_id")
        await _validate_parent(session, actor_id, new_parent_id)
        if has_children:
            raise ValidationError("A task with subtasks cannot become a subtask", field="parent_id")

    new_recurrence = update_data.get("recurrence_type", task.recurrence_type)
    if new_recurrence != RecurrenceType.NONE:
        if new_parent_id is not None:
            raise ValidationError("Subtasks cannot be recurring", field="recurrence_type")
        if has_children:
            raise ValidationError("Tasks with subtasks cannot be recurring", field="recurrence_type")

    logger.info(f"Updating task {task_id} by {actor_id} ({access.role.value}): {sorted(update_data)}")

    if "location" in update_data:
        for column, value in _location_values(update_data.pop("location")).items():
            setattr(task, column, value)

    if moving and "position" not in update_data:
        update_data["position"] = await _next_position(session, task.user_id, new_parent_id)

    for name, value in update_data.items():
        setattr(task, name, value)
    task.updated_at = datetime.utcnow()

    await session.flush()
    await session.refresh(task)
    return task


async def _lock_owner(session: AsyncSession, task_id: uuid.UUID) -> None:
    """
    Lock the owner's user row before any task row.

    Every start for one owner takes this lock first, so concurrent starts
    queue on it instead of deadlocking on each other's task rows.
    """
    result = await session.execute(select(Task.user_id).where(Task.id == task_id))
    owner_id = result.scalar_one_or_none()
    if owner_id is not None:
        await session.execute(select(User.id).where(User.id == owner_id).with_for_update())


async def set_task_status(
    session: AsyncSession,
    actor_id: str,
    task_id: uuid.UUID,
    status: TaskStatus,
) -> StatusChange:
    """
    Move a task to a new status.

    Starting a task defers every other IN_PROGRESS task of the same
    owner in the same transaction. The owner's user row is locked before
    the task row, so concurrent starts for one owner serialize. The
    deferral is a single conditional UPDATE matching on status, so a task
    completed concurrently is left alone. The partial unique index on
    tasks catches anything that slips past (reported as CONFLICT).
    """
    if status == TaskStatus.DEFERRED:
        raise ValidationError("DEFERRED is not a valid target status", field="status")

    if status == TaskStatus.IN_PROGRESS:
        await _lock_owner(session, task_id)

    access = await require_edit(session, task_id, actor_id, for_update=True)
    task = access.task
    previous_status = task.status

    if status in (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED):
        if not await _children_complete(session, task_id):
            logger.warning(f"Rejected {status.value} for task {task_id}: subtasks incomplete")
            raise ConflictError(SUBTASKS_INCOMPLETE)

    change = StatusChange(task=task, previous_status=previous_status)
    now = datetime.utcnow()

    try:
        if status == TaskStatus.IN_PROGRESS:
            deferred = await session.execute(
                update(Task)
                .where(
                    Task.user_id == task.user_id,
                    Task.status == TaskStatus.IN_PROGRESS,
                    Task.id != task_id,
                )
                .values(status=TaskStatus.PENDING, completed_at=None, updated_at=now)
                .returning(Task.id)
                .execution_options(synchronize_session="fetch")
            )
            change.deferred_task_ids = list(deferred.scalars().all())
            if change.deferred_task_ids:
                logger.info(
                    f"Deferred {len(change.deferred_task_ids)} in-progress task(s) "
                    f"of user {task.user_id} to start {task_id}"
                )

        task.status = status
        task.completed_at = now if status == TaskStatus.COMPLETED else None
        task.updated_at = now
        await session.flush()
    except IntegrityError:
        logger.warning(f"Concurrent start detected for user {task.user_id}, task {task_id}")
        raise ConflictError(ANOTHER_IN_PROGRESS)

    await session.refresh(task)
    logger.info(f"Task {task_id} status {previous_status.value} -> {status.value} by {actor_id}")

    if status == TaskStatus.COMPLETED and previous_status != TaskStatus.COMPLETED:
        actor = await session.get(User, actor_id)
        change.notifications = await collaborator_drafts(
            session,
            task_id,
            exclude_user_id=actor_id,
            type=NotificationType.TASK_COMPLETED,
            title="Task completed",
            message=f'{display_name(actor, "Someone")} completed "{task.title}"',
        )

    return change


async def start_task(session: AsyncSession, actor_id: str, task_id: uuid.UUID) -> StatusChange:
    return await set_task_status(session, actor_id, task_id, TaskStatus.IN_PROGRESS)


async def complete_task(session: AsyncSession, actor_id: str, task_id: uuid.UUID) -> StatusChange:
    return await set_task_status(session, actor_id, task_id, TaskStatus.COMPLETED)


async def defer_task(session: AsyncSession, actor_id: str, task_id: uuid.UUID) -> StatusChange:
    return await set_task_status(session, actor_id, task_id, TaskStatus.PENDING)


# Reverting a completed task is the same edge as deferring
revert_task = defer_task


async def delete_task(session: AsyncSession, actor_id: str, task_id: uuid.UUID) -> None:
    """Delete a task with its subtasks, collaborators and invites. Owner only."""
    access = await require_owner(
        session, task_id, actor_id,
        for_update=True,
        message="Only the task owner can delete this task",
    )
    task = access.task

    result = await session.execute(select(Task.id).where(Task.parent_id == task_id))
    child_ids = list(result.scalars().all())
    all_ids = [task_id, *child_ids]

    await session.execute(delete(TaskCollaborator).where(TaskCollaborator.task_id.in_(all_ids)))
    await session.execute(delete(TaskInvite).where(TaskInvite.task_id.in_(all_ids)))
    await session.execute(
        update(Notification).where(Notification.task_id.in_(all_ids)).values(task_id=None)
    )
    if child_ids:
        await session.execute(delete(Task).where(Task.id.in_(child_ids)))
    await session.delete(task)
    await session.flush()

    logger.info(f"Deleted task {task_id} '{task.title}' with {len(child_ids)} subtask(s)")


# =============================================================================
# Queries
# =============================================================================

_URGENCY_RANK = {Urgency.HIGH: 0, Urgency.MEDIUM: 1, Urgency.LOW: 2}
_STATUS_RANK = {
    TaskStatus.IN_PROGRESS: 0,
    TaskStatus.PENDING: 1,
    TaskStatus.DEFERRED: 2,
    TaskStatus.COMPLETED: 3,
}


def _list_order(task: Task):
    return (
        _STATUS_RANK[task.status],
        _URGENCY_RANK[task.urgency],
        task.deadline is None,
        task.deadline or datetime.max,
        task.position,
    )


async def task_reads(session: AsyncSession, tasks: list[Task], actor_id: str) -> list[TaskRead]:
    roles = await roles_for_tasks(session, tasks, actor_id)
    counts = await child_counts(session, [task.id for task in tasks])
    return [to_task_read(task, roles.get(task.id), counts.get(task.id, (0, 0))) for task in tasks]


async def get_task(session: AsyncSession, actor_id: str, task_id: uuid.UUID) -> TaskDetail:
    access = await require_view(session, task_id, actor_id)

    result = await session.execute(
        select(Task).where(Task.parent_id == task_id).order_by(Task.position)
    )
    children = list(result.scalars().all())
    counts = await child_counts(session, [task_id])

    base = to_task_read(access.task, access.role, counts.get(task_id, (0, 0)))
    return TaskDetail(**base.model_dump(exclude={"is_subtask"}), children=await task_reads(session, children, actor_id))


async def list_tasks(
    session: AsyncSession,
    actor_id: str,
    status: TaskStatus | None = None,
) -> list[TaskRead]:
    """Root tasks the actor owns or collaborates on, most actionable first."""
    shared = select(TaskCollaborator.task_id).where(TaskCollaborator.user_id == actor_id)
    query = select(Task).where(
        or_(Task.user_id == actor_id, Task.id.in_(shared)),
        Task.parent_id.is_(None),
    )
    if status is not None:
        query = query.where(Task.status == status)

    result = await session.execute(query)
    tasks = sorted(result.scalars().all(), key=_list_order)
    return await task_reads(session, tasks, actor_id)


async def get_active_task(session: AsyncSession, actor_id: str) -> TaskRead | None:
    result = await session.execute(
        select(Task).where(Task.user_id == actor_id, Task.status == TaskStatus.IN_PROGRESS)
    )
    task = result.scalars().first()
    if task is None:
        return None
    return (await task_reads(session, [task], actor_id))[0]


async def list_completed_tasks(session: AsyncSession, actor_id: str) -> list[TaskRead]:
    result = await session.execute(
        select(Task)
        .where(Task.user_id == actor_id, Task.status == TaskStatus.COMPLETED)
        .order_by(Task.completed_at.desc())
    )
    return await task_reads(session, list(result.scalars().all()), actor_id)
