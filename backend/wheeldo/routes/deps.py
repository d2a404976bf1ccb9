"""
Shared route plumbing.
"""

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from wheeldo.services.notifications import NotificationDispatcher, NotificationDraft


async def notify_after_commit(
    session: AsyncSession,
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher,
    drafts: list[NotificationDraft],
) -> None:
    """
    Commit the request's transaction, then queue notification delivery.

    Delivery runs after the response in its own session, so it can
    neither block nor roll back the change that triggered it.
    """
    if not drafts:
        return
    await session.commit()
    background_tasks.add_task(dispatcher.dispatch, list(drafts))
