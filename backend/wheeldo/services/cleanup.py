"""
Periodic housekeeping: expired invites and old read notifications.

Run by the arq cron job, the /cron/cleanup endpoint, or
``python -m scripts.cleanup``.
"""

from datetime import datetime

from wheeldo.config import get_settings
from wheeldo.database import get_session_context
from wheeldo.services.notifications import cleanup_old_notifications
from wheeldo.services.sharing import cleanup_expired_invites
from wheeldo.logging_config import get_logger

logger = get_logger(__name__)


async def run_cleanup(now: datetime | None = None, session_context=get_session_context) -> dict[str, int]:
    """Delete stale rows; returns the number removed per kind."""
    settings = get_settings()
    now = now or datetime.utcnow()

    async with session_context() as session:
        expired_invites = await cleanup_expired_invites(session, now)
        old_notifications = await cleanup_old_notifications(
            session, settings.notification_retention_days, now
        )

    logger.info(
        f"Cleanup removed {expired_invites} expired invite(s) "
        f"and {old_notifications} old notification(s)"
    )
    return {
        "expired_invites": expired_invites,
        "old_notifications": old_notifications,
    }
