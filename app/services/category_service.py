import logging

from sqlalchemy import delete, desc, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List, Optional, Tuple, Union

from ..core.config import Config
from ..exceptions import (
    BadRequestException,
    CategoryDeletionBlockedException,
    CategoryIntegrityError,
    CategoryNotFoundException,
    CircularReferenceException,
    ConflictException,
    InvalidParentException,
    SlugConflictException,
)
from ..models import Category
from ..schemas.category import (
    CategoryChildSummary,
    CategoryCreate,
    CategoryDeleteResponse,
    CategoryDetailResponse,
    CategoryListItem,
    CategoryResponse,
    CategorySummary,
    CategoryTreeNode,
    CategoryUpdate,
    DeleteCheckResponse,
    FlatCategory,
    ProductSummary,
)
from ..utils.slug import generate_slug, with_random_suffix
from .category_hierarchy import (
    CategoryIndex,
    collect_descendant_ids,
    flatten_category_tree,
    resolve_category_path,
    would_create_cycle,
)
from .product_service import ProductService


logger = logging.getLogger(__name__)

# flat admin listing; ties fall back to name (case-insensitive), then id
SORTABLE_FIELDS = {
    "sort_order": Category.sort_order,
    "name": func.lower(Category.name),
    "created_at": Category.created_at,
    "updated_at": Category.updated_at,
}


def escape_like(text: str) -> str:
    """Make % and _ in user input match literally in a LIKE pattern escaped with a backslash"""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CategoryService:
    """
    Category hierarchy management.

    Every read works on a snapshot of the categories table fetched for the
    current request. Every mutation runs in a single transaction that first
    locks the rows it validates against, so the checks and the write cannot be
    interleaved with a concurrent move.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.product_service = ProductService(db)

    async def _load_snapshot(self, lock: bool = False) -> List[Category]:
        query = select(Category).execution_options(populate_existing=True)
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _get_category(self, category_id: int, lock: bool = False) -> Optional[Category]:
        query = select(Category).where(Category.id == category_id).execution_options(populate_existing=True)
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalars().first()

    def _report_integrity_error(self, error: CategoryIntegrityError, operation: str):
        logger.error(
            "category.integrity_violation",
            extra={"operation": operation, "category_id": error.category_id, "error": error.message},
        )

    async def get_category_by_id(self, category_id: int) -> Category:
        """
        Get a category by its ID
        """
        category = await self._get_category(category_id)
        if not category:
            raise CategoryNotFoundException(f"Category with ID {category_id} not found")
        return category

    async def get_category_by_slug(self, slug: str) -> Category:
        result = await self.db.execute(select(Category).where(Category.slug == slug))
        category = result.scalars().first()
        if not category:
            raise CategoryNotFoundException(f"Category '{slug}' not found")
        return category

    async def check_category_slug_exists(self, slug: str, category_id: Optional[int] = None) -> bool:
        """
        Check if a category slug already exists
        """
        query = select(Category.id).where(Category.slug == slug)

        # If updating existing category, exclude current category from check
        if category_id is not None:
            query = query.where(Category.id != category_id)

        result = await self.db.execute(query)
        return result.first() is not None

    async def generate_category_slug(self, name: str, category_id: Optional[int] = None) -> str:
        """
        Generate a unique slug from a category name, adding a random suffix on collision
        """
        base_slug = generate_slug(name)
        slug = base_slug

        attempts = 0
        while await self.check_category_slug_exists(slug, category_id):
            attempts += 1
            if attempts > Config.SLUG_MAX_ATTEMPTS:
                raise ConflictException(f"Could not generate a unique slug for '{name}'")
            slug = with_random_suffix(base_slug, Config.SLUG_SUFFIX_LENGTH)

        return slug

    async def _apply_filters(
        self,
        query,
        search: Optional[str] = None,
        parent_id: Optional[int] = None,
        roots_only: bool = False,
        stocked_counts: Optional[Dict[int, int]] = None,
    ):
        """
        Narrow a category query. When ``stocked_counts`` is given, only categories
        whose subtree holds at least one of those products are kept.
        """
        if search:
            pattern = f"%{escape_like(search.strip())}%"
            query = query.where(or_(
                Category.name.ilike(pattern, escape="\\"),
                Category.description.ilike(pattern, escape="\\"),
            ))
        if roots_only:
            query = query.where(Category.parent_id.is_(None))
        elif parent_id is not None:
            query = query.where(Category.parent_id == parent_id)
        if stocked_counts is not None:
            try:
                totals = CategoryIndex(await self._load_snapshot()).subtree_totals(stocked_counts)
            except CategoryIntegrityError as e:
                self._report_integrity_error(e, "list_stocked")
                raise
            query = query.where(Category.id.in_([cid for cid, total in totals.items() if total > 0]))
        return query

    async def count_categories(
        self,
        search: Optional[str] = None,
        parent_id: Optional[int] = None,
        roots_only: bool = False,
    ) -> int:
        filtered = await self._apply_filters(select(Category.id), search, parent_id, roots_only)
        result = await self.db.execute(select(func.count()).select_from(filtered.subquery()))
        return result.scalar() or 0

    async def list_categories(
        self,
        search: Optional[str] = None,
        parent_id: Optional[int] = None,
        roots_only: bool = False,
        tree: bool = False,
        skip: int = 0,
        limit: int = 100,
        public: bool = False,
        only_with_products: bool = False,
        sort_by: str = "sort_order",
        sort_order: str = "asc",
    ) -> Union[List[CategoryTreeNode], List[CategoryListItem]]:
        """
        List categories as flat rows (paginated) or as a nested tree.

        ``only_with_products`` keeps a category when its subtree holds at least
        one countable product, so ancestors of stocked categories stay visible.
        ``sort_by``/``sort_order`` only apply to flat rows; the tree always
        orders siblings by sort order, then name.
        """
        if sort_by not in SORTABLE_FIELDS:
            raise BadRequestException(f"Cannot sort categories by '{sort_by}'")

        counts = await self.product_service.count_active_products_by_category(public=public)
        filtered = bool(search) or roots_only or parent_id is not None

        query = await self._apply_filters(
            select(Category),
            search=search,
            parent_id=parent_id,
            roots_only=roots_only,
            stocked_counts=counts if only_with_products else None,
        )

        if tree:
            result = await self.db.execute(query)
            index = CategoryIndex(result.scalars().all())
            if index.dangling_ids and not filtered:
                logger.warning("category.tree.dangling_parent", extra={"category_ids": index.dangling_ids})
            try:
                return index.build_tree(counts)
            except CategoryIntegrityError as e:
                self._report_integrity_error(e, "list_tree")
                raise

        column = SORTABLE_FIELDS[sort_by]
        primary = desc(column) if sort_order.lower() == "desc" else column
        query = (
            query.order_by(primary, func.lower(Category.name), Category.name, Category.id)
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(query)
        categories = result.scalars().all()

        children_result = await self.db.execute(
            select(Category.parent_id, func.count())
            .where(Category.parent_id.is_not(None))
            .group_by(Category.parent_id)
        )
        children_counts = {parent: count for parent, count in children_result.all()}

        return [
            CategoryListItem(
                **CategoryResponse.model_validate(category).model_dump(),
                product_count=counts.get(category.id, 0),
                children_count=children_counts.get(category.id, 0),
            )
            for category in categories
        ]

    async def list_categories_page(
        self,
        search: Optional[str] = None,
        parent_id: Optional[int] = None,
        roots_only: bool = False,
        skip: int = 0,
        limit: int = 100,
        sort_by: str = "sort_order",
        sort_order: str = "asc",
    ) -> Tuple[List[CategoryListItem], int]:
        """
        Flat admin listing; returns the requested page and the total number of matching categories
        """
        items = await self.list_categories(
            search=search,
            parent_id=parent_id,
            roots_only=roots_only,
            skip=skip,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        total = await self.count_categories(search=search, parent_id=parent_id, roots_only=roots_only)
        return items, total

    async def get_parent_options(self, exclude_id: Optional[int] = None) -> List[FlatCategory]:
        """
        Every category that may become the parent of ``exclude_id``, in tree order with depth.

        The category itself and its descendants are left out. Without ``exclude_id``
        (a category being created) every category is an option.
        """
        index = CategoryIndex(await self._load_snapshot())
        if exclude_id is not None and exclude_id not in index:
            raise CategoryNotFoundException(f"Category with ID {exclude_id} not found")

        try:
            flat = flatten_category_tree(index.build_tree())
        except CategoryIntegrityError as e:
            self._report_integrity_error(e, "parent_options")
            raise

        if exclude_id is None:
            return flat
        excluded = {exclude_id, *collect_descendant_ids(exclude_id, index.children_of)}
        return [item for item in flat if item.id not in excluded]

    async def create_category(self, category_data: CategoryCreate) -> Category:
        """
        Create a category. A missing slug is derived from the name; a supplied slug must be free.
        """
        slug = category_data.slug
        try:
            if category_data.parent_id is not None:
                # lock the parent so it cannot be deleted before we commit
                parent = await self._get_category(category_data.parent_id, lock=True)
                if not parent:
                    raise InvalidParentException()

            if category_data.slug:
                if await self.check_category_slug_exists(category_data.slug):
                    raise SlugConflictException(category_data.slug)
                slug = category_data.slug
            else:
                slug = await self.generate_category_slug(category_data.name)

            category = Category(
                name=category_data.name,
                slug=slug,
                description=category_data.description,
                image_url=category_data.image_url,
                sort_order=category_data.sort_order,
                parent_id=category_data.parent_id,
            )
            self.db.add(category)
            await self.db.commit()
            await self.db.refresh(category)
        except IntegrityError:
            # a concurrent insert took the slug between the check and the commit
            await self.db.rollback()
            raise SlugConflictException(slug)
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "category.created",
            extra={"category_id": category.id, "slug": category.slug, "parent_id": category.parent_id},
        )
        return category

    async def would_create_cycle(self, category_id: int, proposed_parent_id: Optional[int]) -> bool:
        """
        Check a proposed parent against a fresh snapshot without changing anything
        """
        records = await self._load_snapshot()
        parent_of = {record.id: record.parent_id for record in records}
        if category_id not in parent_of:
            raise CategoryNotFoundException(f"Category with ID {category_id} not found")
        try:
            return would_create_cycle(category_id, proposed_parent_id, parent_of)
        except CategoryIntegrityError as e:
            self._report_integrity_error(e, "cycle_check")
            raise

    def _validate_parent(self, category_id: int, parent_id: Optional[int], records_by_id: Dict[int, Category]):
        if parent_id is None:
            return
        if parent_id not in records_by_id:
            raise InvalidParentException()

        parent_of = {record_id: record.parent_id for record_id, record in records_by_id.items()}
        try:
            creates_cycle = would_create_cycle(category_id, parent_id, parent_of)
        except CategoryIntegrityError as e:
            self._report_integrity_error(e, "update")
            raise

        if creates_cycle:
            logger.info(
                "category.cycle_rejected",
                extra={"category_id": category_id, "proposed_parent_id": parent_id},
            )
            raise CircularReferenceException()

    async def update_category(self, category_id: int, category_data: CategoryUpdate) -> Category:
        """
        Update a category; a parent_id in the patch (including null) is validated for existence and cycles
        """
        update_data = category_data.model_dump(exclude_unset=True)

        try:
            records = await self._load_snapshot(lock=True)
            records_by_id = {record.id: record for record in records}

            category = records_by_id.get(category_id)
            if not category:
                raise CategoryNotFoundException(f"Category with ID {category_id} not found")

            if "slug" in update_data and update_data["slug"] != category.slug:
                if await self.check_category_slug_exists(update_data["slug"], category_id):
                    raise SlugConflictException(update_data["slug"])

            if "parent_id" in update_data:
                self._validate_parent(category_id, update_data["parent_id"], records_by_id)

            for key, value in update_data.items():
                setattr(category, key, value)

            await self.db.commit()
            await self.db.refresh(category)
        except IntegrityError:
            await self.db.rollback()
            if "slug" in update_data:
                raise SlugConflictException(update_data["slug"])
            raise ConflictException("Category update conflicts with existing data")
        except Exception:
            await self.db.rollback()
            raise

        logger.info("category.updated", extra={"category_id": category_id, "fields": sorted(update_data)})
        return category

    async def _delete_check(self, category_id: int) -> DeleteCheckResponse:
        product_count = await self.product_service.count_active_products([category_id])
        if product_count > 0:
            noun = "product" if product_count == 1 else "products"
            return DeleteCheckResponse(
                category_id=category_id,
                allowed=False,
                reason=f"Category has {product_count} active {noun}",
                product_count=product_count,
            )
        return DeleteCheckResponse(category_id=category_id, allowed=True, product_count=0)

    async def can_delete_category(self, category_id: int) -> DeleteCheckResponse:
        """
        Decide whether a category may be deleted. Children never block deletion, products do.
        """
        await self.get_category_by_id(category_id)
        return await self._delete_check(category_id)

    async def delete_category(self, category_id: int) -> CategoryDeleteResponse:
        """
        Delete a category, moving its direct children up to its own parent.

        The children update and the delete are committed together or not at all.
        """
        try:
            category = await self._get_category(category_id, lock=True)
            if not category:
                raise CategoryNotFoundException(f"Category with ID {category_id} not found")

            check = await self._delete_check(category_id)
            if not check.allowed:
                logger.info(
                    "category.delete_blocked",
                    extra={"category_id": category_id, "product_count": check.product_count},
                )
                raise CategoryDeletionBlockedException(check.reason, check.product_count)

            new_parent_id = category.parent_id
            children_result = await self.db.execute(
                select(Category.id)
                .where(Category.parent_id == category_id)
                .order_by(Category.id)
                .with_for_update()
            )
            child_ids = list(children_result.scalars().all())

            if child_ids:
                await self.db.execute(
                    update(Category)
                    .where(Category.parent_id == category_id)
                    .values(parent_id=new_parent_id)
                    .execution_options(synchronize_session="fetch")
                )

            await self.db.execute(
                delete(Category)
                .where(Category.id == category_id)
                .execution_options(synchronize_session="fetch")
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "category.deleted",
            extra={"category_id": category_id, "parent_id": new_parent_id, "reparented_child_ids": child_ids},
        )
        return CategoryDeleteResponse(
            deleted_id=category_id,
            parent_id=new_parent_id,
            reparented_child_ids=child_ids,
        )

    async def get_category_path(self, category_id: int) -> List[Category]:
        """
        Breadcrumb from the root down to the category itself
        """
        records = await self._load_snapshot()
        try:
            return resolve_category_path(category_id, {record.id: record for record in records})
        except KeyError:
            raise CategoryNotFoundException(f"Category with ID {category_id} not found")
        except CategoryIntegrityError as e:
            self._report_integrity_error(e, "path")
            raise

    async def count_category_products(
        self,
        category_id: int,
        include_descendants: bool = False,
        public: bool = False,
    ) -> int:
        """
        Count countable products in a category, optionally across its whole subtree
        """
        if not include_descendants:
            await self.get_category_by_id(category_id)
            return await self.product_service.count_active_products([category_id], public=public)

        index = CategoryIndex(await self._load_snapshot())
        if category_id not in index:
            raise CategoryNotFoundException(f"Category with ID {category_id} not found")

        category_ids = [category_id, *collect_descendant_ids(category_id, index.children_of)]
        return await self.product_service.count_active_products(category_ids, public=public)

    async def get_category_detail(self, category_id: int, public: bool = False) -> CategoryDetailResponse:
        return await self._build_detail(lambda index: index.records.get(category_id), public)

    async def get_category_detail_by_slug(self, slug: str, public: bool = True) -> CategoryDetailResponse:
        def find(index):
            return next((record for record in index.records.values() if record.slug == slug), None)

        return await self._build_detail(find, public)

    async def _build_detail(self, lookup, public: bool) -> CategoryDetailResponse:
        index = CategoryIndex(await self._load_snapshot())
        category = lookup(index)
        if category is None:
            raise CategoryNotFoundException()

        counts = await self.product_service.count_active_products_by_category(public=public)

        try:
            path = resolve_category_path(category.id, index.records)
        except CategoryIntegrityError as e:
            self._report_integrity_error(e, "detail")
            raise
        descendant_ids = collect_descendant_ids(category.id, index.children_of)

        parent = index.records.get(category.parent_id) if category.parent_id is not None else None
        children = [
            CategoryChildSummary(
                id=child.id,
                name=child.name,
                slug=child.slug,
                description=child.description,
                image_url=child.image_url,
                sort_order=child.sort_order,
                product_count=counts.get(child.id, 0),
            )
            for child in index.children(category.id)
        ]
        products = await self.product_service.list_category_products(category.id, public=public)

        return CategoryDetailResponse(
            **CategoryResponse.model_validate(category).model_dump(),
            parent=CategorySummary.model_validate(parent) if parent else None,
            children=children,
            path=[CategorySummary.model_validate(node) for node in path],
            product_count=counts.get(category.id, 0),
            subtree_product_count=counts.get(category.id, 0) + sum(counts.get(d, 0) for d in descendant_ids),
            products=[ProductSummary.model_validate(product) for product in products],
        )
