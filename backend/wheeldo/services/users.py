"""
Local user records and first-login provisioning.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from wheeldo.models import User
from wheeldo.services.categories import create_default_categories
from wheeldo.logging_config import get_logger

logger = get_logger(__name__)


async def ensure_user(
    session: AsyncSession,
    uid: str,
    email: str | None = None,
    name: str | None = None,
    image: str | None = None,
) -> tuple[User, bool]:
    """
    Upsert the local mirror of an authenticated user.

    Returns (user, created). A newly created user gets the default
    categories in the same transaction.
    """
    user = await session.get(User, uid)
    if user is not None:
        changed = False
        for field, value in (("email", email), ("name", name), ("image", image)):
            if value is not None and getattr(user, field) != value:
                setattr(user, field, value)
                changed = True
        if changed:
            user.updated_at = datetime.utcnow()
            await session.flush()
        return user, False

    user = User(id=uid, email=email, name=name, image=image)
    session.add(user)
    await session.flush()
    await create_default_categories(session, uid)

    logger.info(f"Provisioned new user {uid} ({email})")
    return user, True


def display_name(user: User | None, fallback: str) -> str:
    if user is None:
        return fallback
    return user.display_name or fallback
