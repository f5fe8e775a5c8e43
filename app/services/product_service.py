from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Iterable, List

from ..enums import ProductStatus
from ..models import Product


class ProductService:
    """
    Read-only view of the product table used by the category subsystem.

    A product counts towards its category while it is not soft-deleted and not
    archived. Storefront (public) reads are stricter and only count products
    that are live, i.e. ACTIVE.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def countable_conditions(public: bool = False) -> list:
        conditions = [Product.deleted_at.is_(None)]
        if public:
            conditions.append(Product.status == ProductStatus.ACTIVE)
        else:
            conditions.append(Product.status != ProductStatus.ARCHIVED)
        return conditions

    async def count_active_products(self, category_ids: Iterable[int], public: bool = False) -> int:
        """Count countable products whose category is one of ``category_ids``"""
        ids = set(category_ids)
        if not ids:
            return 0

        query = (
            select(func.count())
            .select_from(Product)
            .where(Product.category_id.in_(ids), *self.countable_conditions(public))
        )
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def count_active_products_by_category(self, public: bool = False) -> Dict[int, int]:
        """Direct product count per category id, categories without products are absent"""
        query = (
            select(Product.category_id, func.count())
            .where(Product.category_id.is_not(None), *self.countable_conditions(public))
            .group_by(Product.category_id)
        )
        result = await self.db.execute(query)
        return {category_id: count for category_id, count in result.all()}

    async def list_category_products(self, category_id: int, limit: int = 10, public: bool = False) -> List[Product]:
        query = (
            select(Product)
            .where(Product.category_id == category_id, *self.countable_conditions(public))
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())
