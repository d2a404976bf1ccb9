"""
Sharing: invite tokens and collaborator management.

An invite is a capability with a TTL, not a one-time code. Any number of
users may redeem the same token until it expires or the owner revokes
it; each redemption upserts that user's own collaborator row, and an
existing grant is only ever upgraded (viewer -> editor), never
downgraded.
"""

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from wheeldo.config import get_settings
from wheeldo.exceptions import (
    ConflictError,
    ForbiddenError,
    InviteExpiredError,
    NotFoundError,
    ValidationError,
)
from wheeldo.models import NotificationType, Task, TaskCollaborator, TaskInvite, User
from wheeldo.services.authorization import require_owner, require_view, resolve_access
from wheeldo.services.notifications import NotificationDraft
from wheeldo.services.users import display_name
from wheeldo.logging_config import get_logger

logger = get_logger(__name__)

settings = get_settings()

INVITE_NOT_FOUND = "Invite not found"
INVITE_EXPIRED = "Invite has expired"


def generate_invite_token() -> str:
    """256 bits from the OS CSPRNG, URL-safe base64 without padding."""
    return secrets.token_urlsafe(32)


def invite_url(token: str) -> str:
    return f"{settings.app_url.rstrip('/')}/invite/{token}"


@dataclass
class ValidInvite:
    invite: TaskInvite
    task: Task
    creator: User | None
    valid: bool = True


@dataclass
class InvalidInvite:
    reason: str
    expired: bool = False
    valid: bool = False


InviteCheck = ValidInvite | InvalidInvite


@dataclass
class AcceptResult:
    task: Task
    already_collaborator: bool
    notifications: list[NotificationDraft] = field(default_factory=list)


@dataclass
class CollaboratorChange:
    collaborator: TaskCollaborator | None
    notifications: list[NotificationDraft] = field(default_factory=list)


# =============================================================================
# Invites
# =============================================================================

async def _live_invite_count(session: AsyncSession, task_id: uuid.UUID, now: datetime) -> int:
    result = await session.execute(
        select(func.count()).select_from(TaskInvite).where(
            TaskInvite.task_id == task_id,
            TaskInvite.expires_at > now,
        )
    )
    return result.scalar_one()


async def create_invite(
    session: AsyncSession,
    actor_id: str,
    task_id: uuid.UUID,
    can_edit: bool = False,
) -> TaskInvite:
    """
    Issue a new invite link for a task. Owner only.

    The task row is locked while counting so two concurrent requests
    cannot both take the last free slot.
    """
    await require_owner(
        session, task_id, actor_id,
        for_update=True,
        message="Only the task owner can create invites",
    )

    now = datetime.utcnow()
    limit = settings.max_invites_per_task
    if await _live_invite_count(session, task_id, now) >= limit:
        logger.warning(f"Invite limit reached for task {task_id}")
        raise ValidationError(f"Maximum of {limit} invites per task reached")

    invite = TaskInvite(
        token=generate_invite_token(),
        task_id=task_id,
        created_by=actor_id,
        can_edit=can_edit,
        expires_at=now + timedelta(days=settings.invite_expiry_days),
        created_at=now,
    )
    session.add(invite)
    await session.flush()
    await session.refresh(invite)

    logger.info(
        f"Created invite {invite.id} for task {task_id} "
        f"({'editor' if can_edit else 'viewer'}, expires {invite.expires_at:%Y-%m-%d})"
    )
    return invite


async def list_invites(session: AsyncSession, actor_id: str, task_id: uuid.UUID) -> list[TaskInvite]:
    """Live invites for a task, newest first. Owner only."""
    await require_owner(session, task_id, actor_id, message="Only the task owner can view invites")

    result = await session.execute(
        select(TaskInvite)
        .where(TaskInvite.task_id == task_id, TaskInvite.expires_at > datetime.utcnow())
        .order_by(TaskInvite.created_at.desc())
    )
    return list(result.scalars().all())


async def validate_invite(
    session: AsyncSession,
    token: str,
    now: datetime | None = None,
) -> InviteCheck:
    """
    Check a token without side effects.

    Expiry is `now > expires_at` and does not depend on how many times
    the token has been redeemed.
    """
    result = await session.execute(select(TaskInvite).where(TaskInvite.token == token))
    invite = result.scalar_one_or_none()
    if invite is None:
        return InvalidInvite(reason=INVITE_NOT_FOUND)

    if (now or datetime.utcnow()) > invite.expires_at:
        return InvalidInvite(reason=INVITE_EXPIRED, expired=True)

    task = await session.get(Task, invite.task_id)
    if task is None:
        return InvalidInvite(reason=INVITE_NOT_FOUND)

    creator = await session.get(User, invite.created_by)
    return ValidInvite(invite=invite, task=task, creator=creator)


async def accept_invite(session: AsyncSession, actor_id: str, token: str) -> AcceptResult:
    """Redeem a token for the actor; the invite stays usable for others."""
    check = await validate_invite(session, token)
    if not check.valid:
        logger.warning(f"User {actor_id} failed to accept invite: {check.reason}")
        if check.expired:
            raise InviteExpiredError()
        raise NotFoundError("Invite", INVITE_NOT_FOUND)

    invite = check.invite
    access = await resolve_access(session, invite.task_id, actor_id, for_update=True)
    if access is None:
        raise NotFoundError("Invite", INVITE_NOT_FOUND)
    task = access.task

    if access.role.is_owner:
        raise ConflictError("You are already the owner of this task")

    result = await session.execute(
        select(TaskCollaborator).where(
            TaskCollaborator.task_id == task.id,
            TaskCollaborator.user_id == actor_id,
        )
    )
    existing = result.scalar_one_or_none()

    if existing is not None:
        if invite.can_edit and not existing.can_edit:
            existing.can_edit = True
            await session.flush()
            logger.info(f"Upgraded user {actor_id} to editor on task {task.id} via invite {invite.id}")
        return AcceptResult(task=task, already_collaborator=True)

    session.add(TaskCollaborator(
        task_id=task.id,
        user_id=actor_id,
        can_edit=invite.can_edit,
        invited_by=invite.created_by,
    ))
    await session.flush()

    logger.info(
        f"User {actor_id} joined task {task.id} as "
        f"{'editor' if invite.can_edit else 'viewer'} via invite {invite.id}"
    )

    joiner = await session.get(User, actor_id)
    return AcceptResult(
        task=task,
        already_collaborator=False,
        notifications=[NotificationDraft(
            user_id=task.user_id,
            type=NotificationType.COLLABORATOR_JOINED,
            title="New collaborator",
            message=f'{display_name(joiner, "Someone")} joined "{task.title}"',
            task_id=task.id,
        )],
    )


async def revoke_invite(
    session: AsyncSession,
    actor_id: str,
    invite_id: uuid.UUID,
    task_id: uuid.UUID | None = None,
) -> None:
    invite = await session.get(TaskInvite, invite_id)
    if invite is None or (task_id is not None and invite.task_id != task_id):
        raise NotFoundError("Invite", INVITE_NOT_FOUND)

    await require_owner(
        session, invite.task_id, actor_id,
        message="Only the task owner can revoke invites",
    )

    await session.delete(invite)
    await session.flush()
    logger.info(f"Revoked invite {invite_id} on task {invite.task_id}")


async def cleanup_expired_invites(session: AsyncSession, now: datetime | None = None) -> int:
    """Batch job: drop invites past their expiry."""
    result = await session.execute(
        delete(TaskInvite).where(TaskInvite.expires_at < (now or datetime.utcnow()))
    )
    return result.rowcount


# =============================================================================
# Collaborators
# =============================================================================

async def list_collaborators(
    session: AsyncSession,
    actor_id: str,
    task_id: uuid.UUID,
) -> tuple[User | None, list[tuple[TaskCollaborator, User | None]]]:
    """Owner plus collaborators in join order; visible to any role."""
    access = await require_view(session, task_id, actor_id)
    owner = await session.get(User, access.task.user_id)

    result = await session.execute(
        select(TaskCollaborator, User)
        .join(User, User.id == TaskCollaborator.user_id, isouter=True)
        .where(TaskCollaborator.task_id == task_id)
        .order_by(TaskCollaborator.created_at)
    )
    return owner, [(collaborator, user) for collaborator, user in result.all()]


async def _get_collaborator(
    session: AsyncSession,
    task_id: uuid.UUID,
    user_id: str,
) -> TaskCollaborator:
    result = await session.execute(
        select(TaskCollaborator)
        .where(TaskCollaborator.task_id == task_id, TaskCollaborator.user_id == user_id)
        .with_for_update()
    )
    collaborator = result.scalar_one_or_none()
    if collaborator is None:
        raise NotFoundError("Collaborator")
    return collaborator


async def update_collaborator_permission(
    session: AsyncSession,
    actor_id: str,
    task_id: uuid.UUID,
    target_user_id: str,
    can_edit: bool,
) -> CollaboratorChange:
    access = await require_owner(
        session, task_id, actor_id,
        message="Only the task owner can change collaborator permissions",
    )
    collaborator = await _get_collaborator(session, task_id, target_user_id)

    change = CollaboratorChange(collaborator=collaborator)
    if collaborator.can_edit == can_edit:
        return change

    collaborator.can_edit = can_edit
    await session.flush()
    logger.info(
        f"Set collaborator {target_user_id} on task {task_id} to "
        f"{'editor' if can_edit else 'viewer'}"
    )

    title = access.task.title
    change.notifications.append(NotificationDraft(
        user_id=target_user_id,
        type=NotificationType.TASK_SHARED,
        title="Access updated",
        message=(
            f'You can now edit "{title}"' if can_edit
            else f'You now have view-only access to "{title}"'
        ),
        task_id=task_id,
    ))
    return change


async def remove_collaborator(
    session: AsyncSession,
    actor_id: str,
    task_id: uuid.UUID,
    target_user_id: str,
) -> CollaboratorChange:
    """The owner may remove anyone; a collaborator may remove themselves."""
    access = await require_view(session, task_id, actor_id)
    is_owner = access.role.is_owner
    is_self = target_user_id == actor_id

    if not is_owner and not is_self:
        raise ForbiddenError(
            "Only the task owner can remove collaborators, or you can remove yourself"
        )

    collaborator = await _get_collaborator(session, task_id, target_user_id)
    await session.delete(collaborator)
    await session.flush()

    task = access.task
    logger.info(f"Removed collaborator {target_user_id} from task {task_id} (by {actor_id})")

    change = CollaboratorChange(collaborator=None)
    if is_self and not is_owner:
        leaver = await session.get(User, target_user_id)
        change.notifications.append(NotificationDraft(
            user_id=task.user_id,
            type=NotificationType.COLLABORATOR_LEFT,
            title="Collaborator left",
            message=f'{display_name(leaver, "A collaborator")} left "{task.title}"',
            task_id=task_id,
        ))
    elif is_owner and not is_self:
        change.notifications.append(NotificationDraft(
            user_id=target_user_id,
            type=NotificationType.COLLABORATOR_LEFT,
            title="Removed from task",
            message=f'You were removed from "{task.title}"',
            task_id=task_id,
        ))
    return change
