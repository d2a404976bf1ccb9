"""
Category routes for the Wheeldo API.
"""

import uuid
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from wheeldo.auth import AuthenticatedUser, get_current_user
from wheeldo.database import get_session
from wheeldo.models import Category
from wheeldo.schemas import CategoryCreate, CategoryRead, CategoryUpdate
from wheeldo.services import categories

router = APIRouter()


@router.get("/", response_model=list[CategoryRead])
async def list_categories(
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[Category]:
    return await categories.list_categories(session, user.uid)


@router.post("/", response_model=CategoryRead, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_in: CategoryCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Category:
    return await categories.create_category(session, user.uid, category_in)


@router.patch("/{category_id}", response_model=CategoryRead)
async def update_category(
    category_id: uuid.UUID,
    category_in: CategoryUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Category:
    """Only provided fields are updated."""
    return await categories.update_category(session, user.uid, category_id, category_in)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> None:
    """Delete a category. Its tasks are kept, uncategorised."""
    await categories.delete_category(session, user.uid, category_id)
