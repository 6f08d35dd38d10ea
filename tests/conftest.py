"""Test config and shared fixtures."""
import pytest
from decimal import Decimal
from typing import AsyncGenerator, List
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import apps.models  # noqa: F401  register tables
from framework.dependencies import get_db
from framework.repository.unit_of_work import UnitOfWork
from framework.security import CurrentUser, RoleName, create_access_token, get_password_hash
from apps.audit.service import UserActionPublisher, get_action_publisher
from apps.catalog.models import Category, Product, ProductImage
from apps.identity.models import AppUser


# In-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PASSWORD = "secret123"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def uow(async_session: AsyncSession) -> UnitOfWork:
    return UnitOfWork(session=async_session)


# --- Users ---

def as_current_user(user: AppUser) -> CurrentUser:
    """Token claims for a stored user, as the security dependencies would build them."""
    return CurrentUser(id=user.id, username=user.username, roles=list(user.roles), ip_address="127.0.0.1")


def auth_headers(user: AppUser) -> dict:
    token = create_access_token(
        data={"sub": str(user.id), "username": user.username, "roles": list(user.roles)}
    )
    return {"Authorization": f"Bearer {token}"}


async def _create_user(session: AsyncSession, username: str, roles: List[str]) -> AppUser:
    user = AppUser(
        username=username,
        email=f"{username}@nekovi.test",
        hashed_password=PASSWORD_HASH,
        full_name=username.title(),
        roles=roles,
    )
    user.mark_created()
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def customer(async_session: AsyncSession) -> AppUser:
    return await _create_user(async_session, "customer", [RoleName.CUSTOMER.value])


@pytest.fixture
async def other_customer(async_session: AsyncSession) -> AppUser:
    return await _create_user(async_session, "another", [RoleName.CUSTOMER.value])


@pytest.fixture
async def staff(async_session: AsyncSession) -> AppUser:
    return await _create_user(async_session, "staff", [RoleName.STAFF.value])


@pytest.fixture
async def admin(async_session: AsyncSession) -> AppUser:
    return await _create_user(async_session, "admin", [RoleName.ADMIN.value])


# --- Catalog ---

@pytest.fixture
async def category(async_session: AsyncSession) -> Category:
    category = Category(name="Figures", description="Scale and prize figures")
    category.mark_created()
    async_session.add(category)
    await async_session.commit()
    return category


@pytest.fixture
def make_product(async_session: AsyncSession, category: Category):
    """Factory: ``await make_product(name, price=..., stock=..., image=...)``."""
    async def _make(name: str, price: str = "250000", stock: int = 10, image: str = None) -> Product:
        product = Product(name=name, price=Decimal(price), stock_quantity=stock, category_id=category.id)
        product.mark_created()
        async_session.add(product)
        if image:
            product_image = ProductImage(product_id=product.id, image_path=image, is_primary=True)
            product_image.mark_created()
            async_session.add(product_image)
        await async_session.commit()
        return product

    return _make


@pytest.fixture
async def product(make_product) -> Product:
    return await make_product("Rem 1/7 Scale Figure", price="1200000", stock=5, image="products/rem.jpg")


# --- HTTP ---

@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """App client on the test database; audit publishing is disabled."""
    from main import app

    async def _get_db():
        async with session_factory() as session:
            yield session

    async def _get_action_publisher():
        return UserActionPublisher(None)

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_action_publisher] = _get_action_publisher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
