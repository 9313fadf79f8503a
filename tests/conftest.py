import os

# Must be set before api.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import api.models  # noqa: F401
from api.database import Base, get_db
from api.main import app
from api.models.company import Company
from api.models.enums import Role
from api.models.user import User
from api.services.auth_service import create_access_token


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def org(db):
    """
    TechCorp (USD): admin, managers m1/m2/m3, employee `emp` reporting to m1,
    employee `orphan` with no manager.
    """
    company = Company(name="TechCorp Inc", base_currency="USD", country="United States")
    db.add(company)
    await db.flush()

    def _user(name, role, manager_id=None):
        u = User(
            company_id=company.id,
            email=f"{name}@techcorp.com",
            name=name.title(),
            role=role.value,
            manager_id=manager_id,
        )
        db.add(u)
        return u

    admin = _user("admin", Role.ADMIN)
    m1 = _user("john", Role.MANAGER)
    m2 = _user("mitchell", Role.MANAGER)
    m3 = _user("andreas", Role.MANAGER)
    await db.flush()
    emp = _user("sarah", Role.EMPLOYEE, manager_id=m1.id)
    orphan = _user("lisa", Role.EMPLOYEE)
    await db.flush()
    await db.commit()

    return SimpleNamespace(
        company=company, admin=admin, m1=m1, m2=m2, m3=m3, emp=emp, orphan=orphan
    )


@pytest.fixture
async def other_org(db):
    company = Company(name="Beta GmbH", base_currency="EUR", country="Germany")
    db.add(company)
    await db.flush()
    admin = User(
        company_id=company.id, email="admin@beta.example", name="Beta Admin",
        role=Role.ADMIN.value,
    )
    manager = User(
        company_id=company.id, email="boss@beta.example", name="Beta Boss",
        role=Role.MANAGER.value,
    )
    db.add_all([admin, manager])
    await db.commit()
    return SimpleNamespace(company=company, admin=admin, manager=manager)


def headers_for(user: User) -> dict:
    token = create_access_token(user.id, user.company_id, Role(user.role), user.email)
    return {"Authorization": f"Bearer {token}"}


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
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def headers():
    return headers_for
