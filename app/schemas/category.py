from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime
from urllib.parse import urlparse
import bleach

from ..utils.slug import is_valid_slug


SORT_ORDER_MAX = 999999

# Category descriptions are short blurbs, only inline formatting survives
ALLOWED_DESCRIPTION_TAGS = ['p', 'br', 'strong', 'b', 'em', 'i', 'u', 'ul', 'ol', 'li', 'a', 'span']
ALLOWED_DESCRIPTION_ATTRIBUTES = {'a': ['href', 'title']}


def _clean_name(v):
    if isinstance(v, str):
        # drop control characters left by copy/paste
        v = "".join(ch for ch in v if ch.isprintable()).strip()
    return v


def _check_slug(v):
    if v is None:
        return v
    v = v.strip()
    if not is_valid_slug(v):
        raise ValueError('Slug must contain only lowercase letters, numbers and single hyphens')
    return v


def _sanitize_description(v):
    if not v:
        return v
    return bleach.clean(
        v,
        tags=ALLOWED_DESCRIPTION_TAGS,
        attributes=ALLOWED_DESCRIPTION_ATTRIBUTES,
        protocols=['http', 'https', 'mailto'],
        strip=True,
        strip_comments=True,
    ).strip()


def _check_image_url(v):
    if v is None:
        return v
    v = v.strip()
    parsed = urlparse(v)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ValueError('Image URL must be an absolute http(s) URL')
    return v


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    image_url: Optional[str] = Field(None, max_length=500)
    sort_order: int = Field(0, ge=0, le=SORT_ORDER_MAX)
    parent_id: Optional[int] = Field(None, gt=0)

    @field_validator('name', mode='before')
    @classmethod
    def clean_name(cls, v):
        return _clean_name(v)

    @field_validator('description', mode='before')
    @classmethod
    def sanitize_description(cls, v):
        """Sanitize HTML description using bleach"""
        return _sanitize_description(v)

    @field_validator('image_url')
    @classmethod
    def validate_image_url(cls, v):
        return _check_image_url(v)


class CategoryCreate(CategoryBase):
    slug: Optional[str] = None

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, v):
        return _check_slug(v)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    image_url: Optional[str] = Field(None, max_length=500)
    sort_order: Optional[int] = Field(None, ge=0, le=SORT_ORDER_MAX)
    parent_id: Optional[int] = Field(None, gt=0)  # explicit null moves the category to the root

    @field_validator('name', mode='before')
    @classmethod
    def clean_name(cls, v):
        return _clean_name(v)

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, v):
        return _check_slug(v)

    @field_validator('description', mode='before')
    @classmethod
    def sanitize_description(cls, v):
        return _sanitize_description(v)

    @field_validator('image_url')
    @classmethod
    def validate_image_url(cls, v):
        return _check_image_url(v)

    @model_validator(mode='after')
    def reject_null_required_fields(self):
        """name, slug and sort_order may be omitted but never cleared"""
        for field_name in ('name', 'slug', 'sort_order'):
            if field_name in self.model_fields_set and getattr(self, field_name) is None:
                raise ValueError(f'{field_name} cannot be null')
        return self


class CategoryResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    sort_order: int = 0
    parent_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CategorySummary(BaseModel):
    id: int
    name: str
    slug: str

    class Config:
        from_attributes = True


class CategoryChildSummary(CategorySummary):
    description: Optional[str] = None
    image_url: Optional[str] = None
    sort_order: int = 0
    product_count: int = 0


class CategoryListItem(CategoryResponse):
    product_count: int = 0
    children_count: int = 0


class CategoryTreeNode(CategoryResponse):
    """A category with its ordered children, rebuilt from flat rows on every read"""
    children: List["CategoryTreeNode"] = []
    product_count: Optional[int] = None


class CategoryListPage(BaseModel):
    items: List[CategoryListItem]
    total: int
    page: int
    size: int
    pages: int


class FlatCategory(CategoryResponse):
    depth: int = 0
    has_children: bool = False
    product_count: Optional[int] = None


class ProductSummary(BaseModel):
    id: int
    name: str
    slug: str
    sku: str
    price: float

    class Config:
        from_attributes = True


class CategoryDetailResponse(CategoryResponse):
    parent: Optional[CategorySummary] = None
    children: List[CategoryChildSummary] = []
    path: List[CategorySummary] = []
    product_count: int = 0
    subtree_product_count: int = 0
    products: List[ProductSummary] = []


class DeleteCheckResponse(BaseModel):
    category_id: int
    allowed: bool
    reason: Optional[str] = None
    product_count: int = 0


class CategoryDeleteResponse(BaseModel):
    deleted_id: int
    parent_id: Optional[int] = None
    reparented_child_ids: List[int] = []
    message: str = "Category deleted successfully"


CategoryTreeNode.model_rebuild()
