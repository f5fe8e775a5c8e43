import asyncio
import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Category
from ..schemas.category import CategoryCreate
from ..services.category_service import CategoryService


logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_PATHS = [
    "Electronics > Phones > Smartphones",
    "Electronics > Phones > Accessories",
    "Electronics > Computers > Laptops",
    "Clothing > Shoes",
    "Clothing > Outerwear",
    "Accessories",
]


async def seed_categories(session: AsyncSession, paths: Iterable[str] = DEFAULT_CATEGORY_PATHS) -> int:
    """
    Create the categories named by "Parent > Child > Grandchild" lines.

    Categories that already exist under the same parent (matched by name) are
    reused, so running the seed twice creates nothing new. Returns the number
    of categories created.
    """
    service = CategoryService(session)
    result = await session.execute(select(Category))
    existing: Dict[tuple, int] = {
        (category.parent_id, category.name): category.id for category in result.scalars().all()
    }

    created = 0
    for line in paths:
        parts = [part.strip() for part in line.split(">") if part.strip()]
        parent_id: Optional[int] = None
        for name in parts:
            key = (parent_id, name)
            if key not in existing:
                category = await service.create_category(
                    CategoryCreate(name=name, parent_id=parent_id)
                )
                existing[key] = category.id
                created += 1
            parent_id = existing[key]

    logger.info("category.seeded", extra={"created": created})
    return created


async def main():
    from ..core.logging_config import setup_logging
    from .database import AsyncSessionLocal, init_db

    setup_logging()
    await init_db()
    async with AsyncSessionLocal() as session:
        await seed_categories(session)


if __name__ == "__main__":
    asyncio.run(main())
