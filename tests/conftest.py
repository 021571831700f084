"""Pytest fixtures: in-memory SQLite database, API client, data factories."""
import uuid
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from craftmarket import models  # noqa: F401
from craftmarket.database import Base, get_db
from craftmarket.main import app
from craftmarket.models.product import Product, ProductCategory, ProductStatus
from craftmarket.models.user import ArtisanProfile, CustomerProfile, User, UserRole


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
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    async def _make(role: UserRole = UserRole.CUSTOMER, **overrides) -> User:
        user = User(
            email=overrides.pop("email", f"{uuid.uuid4().hex[:10]}@example.com"),
            first_name=overrides.pop("first_name", role.value.title()),
            last_name=overrides.pop("last_name", "Tester"),
            role=role.value,
            is_active=overrides.pop("is_active", True),
        )
        if role == UserRole.CUSTOMER:
            user.customer_profile = CustomerProfile(
                loyalty_points=0,
                total_orders=0,
                total_spent=Decimal("0.00"),
                average_order_value=Decimal("0.00"),
            )
        elif role == UserRole.ARTISAN:
            user.artisan_profile = ArtisanProfile(
                business_name=overrides.pop("business_name", "Kandy Crafts"),
                product_count=0,
            )
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest.fixture
def make_product(db):
    async def _make(seller: User, **overrides) -> Product:
        product = Product(
            name=overrides.pop("name", "Kolam Mask"),
            category=overrides.pop("category", ProductCategory.MASKS.value),
            seller_id=seller.id,
            base_price=Decimal(str(overrides.pop("base_price", "100.00"))),
            quantity=overrides.pop("quantity", 10),
            reserved_quantity=overrides.pop("reserved_quantity", 0),
            status=overrides.pop("status", ProductStatus.ACTIVE.value),
            is_active=overrides.pop("is_active", True),
            customization_options=overrides.pop("customization_options", []),
            **overrides,
        )
        db.add(product)
        await db.commit()
        return product

    return _make


@pytest.fixture
async def customer(make_user):
    return await make_user(UserRole.CUSTOMER)


@pytest.fixture
async def artisan(make_user):
    return await make_user(UserRole.ARTISAN)


@pytest.fixture
async def admin(make_user):
    return await make_user(UserRole.ADMIN)
