"""
In-app notifications.

Sharing and completion events produce NotificationDraft values. The
services that create drafts never write them: the caller hands them to a
NotificationDispatcher once the primary transaction has committed. The
dispatcher writes each draft in its own session and swallows failures, so
a broken notification can never undo the task or invite change that
caused it. Duplicates on retry are acceptable.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable

from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from wheeldo.database import async_session_maker
from wheeldo.exceptions import NotFoundError
from wheeldo.models import Notification, NotificationType, Task, TaskCollaborator
from wheeldo.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class NotificationDraft:
    user_id: str
    type: NotificationType
    title: str
    message: str
    task_id: uuid.UUID | None = None


class NotificationDispatcher:
    """Fire-and-forget writer for notification drafts."""

    def __init__(self, session_factory: Callable[[], AsyncSession] = async_session_maker):
        self._session_factory = session_factory

    async def notify(self, draft: NotificationDraft) -> bool:
        """Persist one notification. Returns False instead of raising on failure."""
        try:
            async with self._session_factory() as session:
                session.add(Notification(
                    user_id=draft.user_id,
                    type=draft.type,
                    title=draft.title,
                    message=draft.message,
                    task_id=draft.task_id,
                ))
                await session.commit()
        except Exception:
            logger.exception(
                f"Failed to deliver {draft.type.value} notification to user={draft.user_id}"
            )
            return False

        logger.debug(f"Notified user={draft.user_id} type={draft.type.value}")
        return True

    async def dispatch(self, drafts: Iterable[NotificationDraft]) -> int:
        """Deliver drafts one by one; returns how many were written."""
        delivered = 0
        for draft in drafts:
            if await self.notify(draft):
                delivered += 1
        return delivered


_dispatcher = NotificationDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    """Dependency returning the process-wide dispatcher."""
    return _dispatcher


async def collaborator_drafts(
    session: AsyncSession,
    task_id: uuid.UUID,
    exclude_user_id: str,
    type: NotificationType,
    title: str,
    message: str,
) -> list[NotificationDraft]:
    """Drafts for the task's owner and collaborators, minus the actor."""
    task = await session.get(Task, task_id)
    if task is None:
        return []

    result = await session.execute(
        select(TaskCollaborator.user_id).where(TaskCollaborator.task_id == task_id)
    )
    recipients = {task.user_id, *result.scalars().all()}
    recipients.discard(exclude_user_id)

    return [
        NotificationDraft(user_id=user_id, type=type, title=title, message=message, task_id=task_id)
        for user_id in sorted(recipients)
    ]


# =============================================================================
# Recipient-side operations
# =============================================================================

async def list_notifications(
    session: AsyncSession,
    user_id: str,
    limit: int = 20,
    offset: int = 0,
    unread_only: bool = False,
) -> list[Notification]:
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    query = query.order_by(Notification.created_at.desc()).limit(limit).offset(offset)

    result = await session.execute(query)
    return list(result.scalars().all())


async def unread_count(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id,
            Notification.read.is_(False),
        )
    )
    return result.scalar_one()


async def _get_own(session: AsyncSession, user_id: str, notification_id: uuid.UUID) -> Notification:
    notification = await session.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification")
    return notification


async def mark_read(session: AsyncSession, user_id: str, notification_id: uuid.UUID) -> Notification:
    notification = await _get_own(session, user_id, notification_id)
    notification.read = True
    await session.flush()
    return notification


async def mark_many_read(session: AsyncSession, user_id: str, notification_ids: list[uuid.UUID]) -> int:
    """Only the caller's own notifications are touched."""
    result = await session.execute(
        update(Notification)
        .where(Notification.id.in_(notification_ids), Notification.user_id == user_id)
        .values(read=True)
    )
    return result.rowcount


async def mark_all_read(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    return result.rowcount


async def delete_notification(session: AsyncSession, user_id: str, notification_id: uuid.UUID) -> None:
    notification = await _get_own(session, user_id, notification_id)
    await session.delete(notification)
    await session.flush()


async def delete_read_notifications(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        delete(Notification).where(Notification.user_id == user_id, Notification.read.is_(True))
    )
    return result.rowcount


async def cleanup_old_notifications(
    session: AsyncSession,
    retention_days: int,
    now: datetime | None = None,
) -> int:
    """Purge read notifications older than the retention window."""
    cutoff = (now or datetime.utcnow()) - timedelta(days=retention_days)
    result = await session.execute(
        delete(Notification).where(Notification.read.is_(True), Notification.created_at < cutoff)
    )
    return result.rowcount
