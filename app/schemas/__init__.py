from .category import (
    CategoryCreate,
    CategoryDeleteResponse,
    CategoryDetailResponse,
    CategoryListItem,
    CategoryListPage,
    CategoryResponse,
    CategoryTreeNode,
    CategoryUpdate,
    DeleteCheckResponse,
    FlatCategory,
)


__all__ = [
    # category schemas
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryResponse",
    "CategoryListItem",
    "CategoryListPage",
    "CategoryTreeNode",
    "FlatCategory",
    "CategoryDetailResponse",
    "DeleteCheckResponse",
    "CategoryDeleteResponse",
]
