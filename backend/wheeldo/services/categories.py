"""
Per-user categories.
"""

import uuid
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from wheeldo.exceptions import ConflictError, NotFoundError
from wheeldo.models import Category, Task
from wheeldo.schemas import CategoryCreate, CategoryUpdate
from wheeldo.logging_config import get_logger

logger = get_logger(__name__)


DEFAULT_CATEGORIES = (
    {"name": "Work", "color": "#3b82f6", "icon": "Briefcase"},
    {"name": "Personal", "color": "#8b5cf6", "icon": "User"},
    {"name": "Health", "color": "#22c55e", "icon": "Heart"},
    {"name": "Finance", "color": "#f59e0b", "icon": "DollarSign"},
    {"name": "Home", "color": "#ec4899", "icon": "Home"},
)


async def create_default_categories(session: AsyncSession, user_id: str) -> list[Category]:
    """Give a new user the starter set, skipping names they already have."""
    result = await session.execute(select(Category.name).where(Category.user_id == user_id))
    existing = set(result.scalars().all())

    created = [
        Category(user_id=user_id, **defaults)
        for defaults in DEFAULT_CATEGORIES
        if defaults["name"] not in existing
    ]
    session.add_all(created)
    await session.flush()
    return created


async def _name_taken(
    session: AsyncSession,
    user_id: str,
    name: str,
    exclude_id: uuid.UUID | None = None,
) -> bool:
    query = select(Category.id).where(Category.user_id == user_id, Category.name == name)
    if exclude_id is not None:
        query = query.where(Category.id != exclude_id)
    result = await session.execute(query)
    return result.first() is not None


async def get_own_category(session: AsyncSession, user_id: str, category_id: uuid.UUID) -> Category:
    category = await session.get(Category, category_id)
    if category is None or category.user_id != user_id:
        raise NotFoundError("Category")
    return category


async def list_categories(session: AsyncSession, user_id: str) -> list[Category]:
    result = await session.execute(
        select(Category).where(Category.user_id == user_id).order_by(Category.name)
    )
    return list(result.scalars().all())


async def create_category(session: AsyncSession, user_id: str, data: CategoryCreate) -> Category:
    if await _name_taken(session, user_id, data.name):
        raise ConflictError("A category with this name already exists")

    category = Category(user_id=user_id, **data.model_dump())
    session.add(category)
    await session.flush()
    await session.refresh(category)

    logger.info(f"Created category: id={category.id} name='{category.name}' user={user_id}")
    return category


async def update_category(
    session: AsyncSession,
    user_id: str,
    category_id: uuid.UUID,
    data: CategoryUpdate,
) -> Category:
    category = await get_own_category(session, user_id, category_id)

    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("name") is None:
        update_data.pop("name", None)
    if update_data.get("color") is None:
        update_data.pop("color", None)

    new_name = update_data.get("name")
    if new_name and new_name != category.name:
        if await _name_taken(session, user_id, new_name, exclude_id=category_id):
            raise ConflictError("A category with this name already exists")

    for field, value in update_data.items():
        setattr(category, field, value)
    category.updated_at = datetime.utcnow()

    await session.flush()
    await session.refresh(category)
    return category


async def delete_category(session: AsyncSession, user_id: str, category_id: uuid.UUID) -> None:
    """Delete a category; tasks using it become uncategorised."""
    category = await get_own_category(session, user_id, category_id)

    await session.execute(
        update(Task).where(Task.category_id == category_id).values(category_id=None)
    )
    await session.delete(category)
    await session.flush()

    logger.info(f"Deleted category {category_id} '{category.name}' user={user_id}")
