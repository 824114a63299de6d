"""Category Routes — /api/categories, read side of the seeded catalogue.

Invariants:
    - Only active categories are listed, ordered by name
    - Write operations belong to the admin feature module
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vecinity.infrastructure.database import get_db
from vecinity.models.category import Category
from vecinity.schemas.category import CategoryListResponse, CategoryResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["categories"])


@router.get("", response_model=CategoryListResponse)
async def list_categories(db: AsyncSession = Depends(get_db)):
    """List active report categories."""
    result = await db.execute(
        select(Category).where(Category.is_active.is_(True)).order_by(Category.name),
    )
    return CategoryListResponse(
        data=[CategoryResponse.model_validate(c) for c in result.scalars().all()],
    )
