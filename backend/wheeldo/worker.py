"""
ARQ worker for scheduled housekeeping.

This worker handles:
- cleanup_job: drops expired invites and old read notifications, nightly

Usage:
    arq wheeldo.worker.WorkerSettings
"""

from arq import cron
from arq.connections import RedisSettings

from wheeldo.config import get_settings
from wheeldo.services.cleanup import run_cleanup
from wheeldo.logging_config import setup_logging, get_logger

# Initialize logging for the worker
setup_logging()
logger = get_logger(__name__)

settings = get_settings()


def parse_redis_url(url: str) -> RedisSettings:
    """Parse redis URL into RedisSettings."""
    # redis://localhost:6380/0 -> host=localhost, port=6380, database=0
    url = url.replace("redis://", "")
    database = 0
    if "/" in url:
        url, db_part = url.split("/", 1)
        if db_part:
            database = int(db_part)
    if ":" in url:
        host, port = url.split(":")
        return RedisSettings(host=host, port=int(port), database=database)
    return RedisSettings(host=url, database=database)


async def cleanup_job(ctx: dict) -> dict[str, int]:
    """Periodic cleanup, also callable as a one-off job."""
    return await run_cleanup()


async def startup(ctx: dict) -> None:
    logger.info("ARQ Worker starting up...")
    logger.info(f"Redis: {settings.redis_url}")


async def shutdown(ctx: dict) -> None:
    logger.info("ARQ Worker shutting down...")


class WorkerSettings:
    """ARQ Worker configuration."""

    functions = [cleanup_job]
    cron_jobs = [cron(cleanup_job, hour={3}, minute={0}, run_at_startup=False)]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = parse_redis_url(settings.redis_url)
    max_jobs = 2
    job_timeout = 300  # 5 minutes max per job
