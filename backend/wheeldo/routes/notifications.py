"""
Notification routes: the caller's own inbox.
"""

import uuid
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from wheeldo.auth import AuthenticatedUser, get_current_user
from wheeldo.database import get_session
from wheeldo.models import Notification
from wheeldo.schemas import CountResult, MarkNotificationsRead, NotificationList, NotificationRead
from wheeldo.services import notifications

router = APIRouter()


@router.get("/", response_model=NotificationList)
async def list_notifications(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    unread_only: bool = False,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> NotificationList:
    """Newest first, with the total unread count."""
    items = await notifications.list_notifications(session, user.uid, limit, offset, unread_only)
    return NotificationList(
        notifications=[NotificationRead.model_validate(item) for item in items],
        unread_count=await notifications.unread_count(session, user.uid),
    )


@router.get("/unread-count", response_model=CountResult)
async def get_unread_count(
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CountResult:
    return CountResult(count=await notifications.unread_count(session, user.uid))


@router.post("/read", response_model=CountResult)
async def mark_many_read(
    body: MarkNotificationsRead,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CountResult:
    """Mark the given notifications read; ids belonging to others are ignored."""
    count = await notifications.mark_many_read(session, user.uid, body.notification_ids)
    return CountResult(count=count)


@router.post("/read-all", response_model=CountResult)
async def mark_all_read(
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CountResult:
    return CountResult(count=await notifications.mark_all_read(session, user.uid))


@router.delete("/read", response_model=CountResult)
async def delete_read(
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CountResult:
    """Clear every read notification."""
    return CountResult(count=await notifications.delete_read_notifications(session, user.uid))


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Notification:
    return await notifications.mark_read(session, user.uid, notification_id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> None:
    await notifications.delete_notification(session, user.uid, notification_id)
