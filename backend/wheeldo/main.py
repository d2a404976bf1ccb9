"""
Wheeldo - single-focus task manager with sharing and a "spin the wheel" picker.
"""

from fastapi import FastAPI
from contextlib import asynccontextmanager

from wheeldo.auth import init_firebase
from wheeldo.database import init_db
from wheeldo.routes import categories, collaborators, cron, invites, notifications, tasks
from wheeldo.exceptions import register_exception_handlers
from wheeldo.logging_config import setup_logging, get_logger

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting Wheeldo API...")
    init_firebase()
    await init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutting down Wheeldo API...")


app = FastAPI(
    title="Wheeldo",
    description="Focus on one task at a time; share tasks with collaborators",
    version="0.1.0",
    lifespan=lifespan,
)

# Register custom exception handlers
register_exception_handlers(app)

# Include routers
app.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
app.include_router(invites.task_router, prefix="/tasks", tags=["Invites"])
app.include_router(collaborators.router, prefix="/tasks", tags=["Collaborators"])
app.include_router(invites.router, prefix="/invites", tags=["Invites"])
app.include_router(categories.router, prefix="/categories", tags=["Categories"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
app.include_router(cron.router, prefix="/cron", tags=["Maintenance"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
