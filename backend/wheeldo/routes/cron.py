"""
Scheduler-facing maintenance endpoint.

Protected by a shared secret rather than user auth, so an external
scheduler can trigger cleanup when the arq worker is not running.
"""

import secrets
from fastapi import APIRouter, Header

from wheeldo.config import get_settings
from wheeldo.exceptions import UnauthorizedError
from wheeldo.services.cleanup import run_cleanup
from wheeldo.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/cleanup")
async def cleanup(authorization: str | None = Header(default=None)) -> dict[str, int]:
    """Expects ``Authorization: Bearer <cron_secret>``."""
    expected = get_settings().cron_secret
    if not expected or not authorization or not secrets.compare_digest(
        authorization, f"Bearer {expected}"
    ):
        logger.warning("Rejected cleanup request with bad or missing secret")
        raise UnauthorizedError("Invalid cron secret")

    return await run_cleanup()
