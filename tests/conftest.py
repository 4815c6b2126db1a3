import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from academy_sync.dependencies import get_collections
from academy_sync.models.base import Base
# Import model classes to ensure they're registered with SQLAlchemy
from academy_sync.models.document import Document  # noqa: F401
from academy_sync.repositories.collection_set import CollectionSet
from academy_sync.services.cascade_service import CascadeService
from academy_sync.services.enrollment_service import EnrollmentService
from academy_sync.services.membership_service import MembershipService
from academy_sync.services.roster_reconciliation_service import RosterReconciliationService
# Import FastAPI app AFTER model imports
from academy_sync.main import app


# Test database (SQLite in-memory for speed)
# Use StaticPool to ensure all connections share the same in-memory database
SQLALCHEMY_TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def session_factory():
    """Create fresh database for each test"""
    engine = create_async_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest.fixture
def collections(session_factory):
    return CollectionSet.build(session_factory)


@pytest.fixture
async def file_session_factory(tmp_path):
    """File-backed database: each session gets its own connection, so calls can race"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'academy.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def file_collections(file_session_factory):
    return CollectionSet.build(file_session_factory)


@pytest.fixture
def cascade_service(collections):
    # One row at a time: every session shares the single in-memory connection
    return CascadeService(collections, max_concurrency=1)


@pytest.fixture
def membership_service(collections):
    return MembershipService(collections.students, collections.cohorts)


@pytest.fixture
def reconciliation_service(collections):
    return RosterReconciliationService(collections.students, collections.cohorts)


@pytest.fixture
def enrollment_service(collections):
    return EnrollmentService(collections.courses, collections.cohorts, collections.students)


@pytest.fixture
async def client(collections):
    """HTTP client for the operator API, bound to the test database"""
    app.dependency_overrides[get_collections] = lambda: collections
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()
