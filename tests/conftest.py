import itertools
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import app
from app.core.dependencies import get_db
from app.db.base import Base
from app.enums import ProductStatus
from app.models import Category, Product
from app.utils.slug import generate_slug


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_category(db_session):
    async def _make(name, parent=None, slug=None, sort_order=0, description=None):
        category = Category(
            name=name,
            slug=slug or generate_slug(name),
            sort_order=sort_order,
            description=description,
            parent_id=parent.id if parent is not None else None,
        )
        db_session.add(category)
        await db_session.commit()
        await db_session.refresh(category)
        return category

    return _make


@pytest.fixture
def make_product(db_session):
    counter = itertools.count(1)

    async def _make(category, status=ProductStatus.ACTIVE, deleted=False, name=None):
        number = next(counter)
        product = Product(
            name=name or f"Product {number}",
            slug=f"product-{number}",
            sku=f"SKU-{number:04d}",
            price=10.0 * number,
            status=status,
            category_id=category.id if category is not None else None,
            deleted_at=datetime.now(timezone.utc) if deleted else None,
        )
        db_session.add(product)
        await db_session.commit()
        await db_session.refresh(product)
        return product

    return _make


@pytest.fixture
async def electronics_tree(make_category):
    """Electronics > Phones > Smartphones, plus an unrelated Clothing root"""
    electronics = await make_category("Electronics")
    phones = await make_category("Phones", parent=electronics)
    smartphones = await make_category("Smartphones", parent=phones)
    clothing = await make_category("Clothing", sort_order=1)
    return {
        "electronics": electronics,
        "phones": phones,
        "smartphones": smartphones,
        "clothing": clothing,
    }
