from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Union

from ..core.dependencies import get_db
from ..schemas.category import CategoryDetailResponse, CategoryListItem, CategoryTreeNode
from ..services.category_service import CategoryService


router = APIRouter()


async def get_category_service(db: AsyncSession = Depends(get_db)) -> CategoryService:
    return CategoryService(db)


@router.get("/", response_model=None)
async def list_public_categories(
    tree: bool = Query(False, description="Return the nested tree instead of a flat list"),
    only_with_products: bool = Query(True, description="Hide categories with no live products in their subtree"),
    service: CategoryService = Depends(get_category_service)
) -> Union[List[CategoryTreeNode], List[CategoryListItem]]:
    """
    **Storefront Categories**

    Public category listing. Product counts only include live products.
    """
    return await service.list_categories(
        tree=tree,
        public=True,
        only_with_products=only_with_products,
        limit=1000,
    )


@router.get("/{slug}", response_model=CategoryDetailResponse)
async def get_public_category(
    slug: str,
    service: CategoryService = Depends(get_category_service)
):
    """
    **Category Page**

    Category by slug with breadcrumb path, sub-categories and its latest live products.
    """
    return await service.get_category_detail_by_slug(slug, public=True)
