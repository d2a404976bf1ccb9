#!/usr/bin/env python3
"""
Run the housekeeping job once, outside the worker.

Usage:
    python -m scripts.cleanup
"""

import asyncio

from wheeldo.services.cleanup import run_cleanup
from wheeldo.logging_config import setup_logging


async def main():
    setup_logging()
    removed = await run_cleanup()
    print(
        f"Removed {removed['expired_invites']} expired invite(s) "
        f"and {removed['old_notifications']} old notification(s)"
    )


if __name__ == "__main__":
    asyncio.run(main())
