"""
"Spin the wheel": pick the next task for an undecided user.

Candidates are the user's own PENDING root tasks that could actually be
started right now, i.e. every subtask is already COMPLETED.
"""

import random

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from wheeldo.exceptions import NotFoundError
from wheeldo.models import Task, TaskStatus
from wheeldo.logging_config import get_logger

logger = get_logger(__name__)

_rng = random.SystemRandom()


async def get_wheel_candidates(
    session: AsyncSession,
    user_id: str,
    max_duration: int | None = None,
) -> list[Task]:
    blocked_parents = (
        select(Task.parent_id)
        .where(Task.parent_id.is_not(None), Task.status != TaskStatus.COMPLETED)
    )
    query = select(Task).where(
        Task.user_id == user_id,
        Task.status == TaskStatus.PENDING,
        Task.parent_id.is_(None),
        Task.id.not_in(blocked_parents),
    )
    if max_duration is not None:
        query = query.where(Task.duration <= max_duration)

    result = await session.execute(query.order_by(Task.position))
    return list(result.scalars().all())


async def spin_wheel(
    session: AsyncSession,
    user_id: str,
    max_duration: int | None = None,
) -> Task:
    """Uniform random pick over the candidates. Does not change any status."""
    candidates = await get_wheel_candidates(session, user_id, max_duration)
    if not candidates:
        raise NotFoundError("Task", "No tasks available to spin")

    picked = _rng.choice(candidates)
    logger.debug(f"Wheel picked task {picked.id} out of {len(candidates)} for user {user_id}")
    return picked
