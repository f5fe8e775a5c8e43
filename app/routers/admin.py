from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from ..core.dependencies import get_db, parse_parent_filter
from ..schemas.category import (
    CategoryCreate,
    CategoryDeleteResponse,
    CategoryDetailResponse,
    CategoryListPage,
    CategoryResponse,
    CategoryTreeNode,
    CategoryUpdate,
    DeleteCheckResponse,
    FlatCategory,
)
from ..services.category_service import CategoryService


router = APIRouter()


async def get_category_service(db: AsyncSession = Depends(get_db)) -> CategoryService:
    """Dependency function that provides an instance of CategoryService."""
    return CategoryService(db)


# Category operations
@router.get("/categories", response_model=CategoryListPage)
async def list_categories(
    search: Optional[str] = Query(None, max_length=100),
    parent_id: Optional[str] = Query(None, description="Category ID, or 'root' for top-level categories"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    sort_by: str = Query("sort_order", pattern="^(sort_order|name|created_at|updated_at)$"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    service: CategoryService = Depends(get_category_service)
):
    """
    **List All Categories**

    Retrieves a paginated, flat list of categories with product and child counts.

    **Query Parameters:**

    - **search**: Match against name or description (case-insensitive)
    - **parent_id**: Only children of this category; `root` or `null` for top-level categories
    - **skip**: Number of categories to skip (for pagination) - Default: 0
    - **limit**: Maximum number of categories to return - Default: 100, Max: 100
    - **sort_by**: sort_order, name, created_at or updated_at - Default: sort_order
    - **sort_order**: Sort direction (asc/desc, default: asc)

    **Returns:**

    - Paginated category list with metadata:
        - **items**: Array of category objects
        - **total**: Total number of matching categories
        - **page**: Current page number
        - **size**: Items per page
        - **pages**: Total number of pages
    """
    parent, roots_only = parse_parent_filter(parent_id)
    categories, total_count = await service.list_categories_page(
        search=search,
        parent_id=parent,
        roots_only=roots_only,
        skip=skip,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )

    return {
        "items": categories,
        "total": total_count,
        "page": skip // limit + 1,
        "size": limit,
        "pages": (total_count + limit - 1) // limit,
    }


@router.get("/categories/tree", response_model=List[CategoryTreeNode])
async def get_category_tree(
    search: Optional[str] = Query(None, max_length=100),
    parent_id: Optional[str] = Query(None),
    service: CategoryService = Depends(get_category_service)
):
    """
    **Category Tree**

    Returns all categories nested under their parents, siblings ordered by sort order then name.
    Each node carries the number of products assigned directly to it.

    When a filter hides a category's parent, the category is returned as a top-level node.
    """
    parent, roots_only = parse_parent_filter(parent_id)
    return await service.list_categories(search=search, parent_id=parent, roots_only=roots_only, tree=True)


@router.get("/categories/parent-options", response_model=List[FlatCategory])
async def get_parent_options(
    exclude_id: Optional[int] = Query(None, gt=0, description="Category being edited"),
    service: CategoryService = Depends(get_category_service)
):
    """
    **Parent Picker Options**

    All categories in tree order with their depth, for the parent selector of the
    category form. When editing, pass the category's ID as `exclude_id`: the category
    and its descendants are left out since they cannot become its parent.
    """
    return await service.get_parent_options(exclude_id)


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_data: CategoryCreate,
    service: CategoryService = Depends(get_category_service)
):
    """
    Creates a new product category

    #### Fields:
    - **name**: Category name (required)
    - **slug**: URL identifier (optional, generated from the name when omitted)
    - **description**: Category description (optional)
    - **image_url**: Image URL (optional)
    - **sort_order**: Position among siblings, 0-999999 (optional)
    - **parent_id**: Parent category ID for hierarchical structure (optional)

    **Returns:**
    - Created category details with slug and ID
    """
    return await service.create_category(category_data)


@router.get("/categories/{category_id}", response_model=CategoryDetailResponse)
async def get_category(
    category_id: int,
    service: CategoryService = Depends(get_category_service)
):
    """
    **Category Details**

    Category with its parent, children, breadcrumb path, direct and subtree product counts
    and the most recent products assigned to it.
    """
    return await service.get_category_detail(category_id)


@router.patch("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    category_data: CategoryUpdate,
    service: CategoryService = Depends(get_category_service)
):
    """
    **Update Category**

    Updates an existing category's information, Supports partial updates

    **Path Parameters:**
    - **category_id**: ID of the category to update

    **Fields:** (All optional for partial updates)
    - **name**, **slug**, **description**, **image_url**, **sort_order**
    - **parent_id**: Move the category (use null for root category). Rejected when the
      new parent is the category itself or one of its descendants.
    """
    return await service.update_category(category_id, category_data)


@router.get("/categories/{category_id}/can-delete", response_model=DeleteCheckResponse)
async def check_category_deletion(
    category_id: int,
    service: CategoryService = Depends(get_category_service)
):
    """
    Reports whether the category can be deleted, and why not.
    """
    return await service.can_delete_category(category_id)


@router.delete("/categories/{category_id}", response_model=CategoryDeleteResponse)
async def delete_category(
    category_id: int,
    service: CategoryService = Depends(get_category_service)
):
    """
    **Delete Category**

    Deletes a category that has no products assigned. Its child categories are moved
    to the deleted category's parent (or become top-level categories).

    **Path Parameters:**

    - **category_id**: ID of the category to delete

    **Returns:**
    - Deleted ID and the IDs of the child categories that were moved
    """
    return await service.delete_category(category_id)


@router.get("/categories/{category_id}/path", response_model=List[CategoryResponse])
async def get_category_path(
    category_id: int,
    service: CategoryService = Depends(get_category_service)
):
    """Breadcrumb from the top-level category down to this one"""
    return await service.get_category_path(category_id)


@router.get("/categories/{category_id}/product-count")
async def get_category_product_count(
    category_id: int,
    include_descendants: bool = Query(False),
    service: CategoryService = Depends(get_category_service)
):
    product_count = await service.count_category_products(category_id, include_descendants)
    return {
        "category_id": category_id,
        "include_descendants": include_descendants,
        "product_count": product_count,
    }


@router.get("/categories/{category_id}/cycle-check")
async def check_parent_assignment(
    category_id: int,
    parent_id: Optional[int] = Query(None, gt=0),
    service: CategoryService = Depends(get_category_service)
):
    """Lets the admin form validate a move before submitting it"""
    return {
        "category_id": category_id,
        "parent_id": parent_id,
        "would_create_cycle": await service.would_create_cycle(category_id, parent_id),
    }
