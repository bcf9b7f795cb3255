"""
Centralized Test Configuration.
"""

import pytest
from datetime import date
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from ledger_backend.app.main import app
from ledger_backend.app.db.session import get_db, Base
from ledger_backend.app.core.jwt import create_access_token
from ledger_backend.app.domain.ledger.directions import ActingUser, PAYABLE_ADAPTER, RECEIVABLE_ADAPTER
from ledger_backend.app.domain.ledger.engine import LedgerEngine
from ledger_backend.app.domain.ledger.queries import LedgerQueries
from ledger_backend.app.models.counterparty import Supplier, Customer
from ledger_backend.app.models.enums import UserRole
from ledger_backend.app.schemas.ledger import LedgerRecordCreate
import ledger_backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if self._closed:
            return False
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def setex(self, key, ttl, value):
        return await self.set(key, value, ex=ttl)

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def eval(self, script, numkeys, *args):
        # Only the lock release script is used against this mock
        if self._closed:
            return 0
        key, token = args[0], args[numkeys]
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation and engine-level tests
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    """Session factory bound to the test engine, for code that opens its own sessions."""
    return TestingSessionLocal


# Counterparties

@pytest.fixture
async def supplier(db_session):
    supplier = Supplier(name="Acme Office Supplies", document="11.111.111/0001-11", is_active=True)
    db_session.add(supplier)
    await db_session.commit()
    await db_session.refresh(supplier)
    return supplier


@pytest.fixture
async def inactive_supplier(db_session):
    supplier = Supplier(name="Defunct Paper Co", document="99.999.999/0001-99", is_active=False)
    db_session.add(supplier)
    await db_session.commit()
    await db_session.refresh(supplier)
    return supplier


@pytest.fixture
async def customer(db_session):
    customer = Customer(name="Initech", document="33.333.333/0001-33", is_active=True)
    db_session.add(customer)
    await db_session.commit()
    await db_session.refresh(customer)
    return customer


# Acting users and engines

@pytest.fixture
def accountant():
    return ActingUser(user_id=10, username="accountant", role=UserRole.ACCOUNTANT)


@pytest.fixture
def manager():
    return ActingUser(user_id=20, username="manager", role=UserRole.MANAGER)


@pytest.fixture
def payable_engine():
    return LedgerEngine(PAYABLE_ADAPTER)


@pytest.fixture
def receivable_engine():
    return LedgerEngine(RECEIVABLE_ADAPTER)


@pytest.fixture
def payable_queries():
    return LedgerQueries(PAYABLE_ADAPTER)


@pytest.fixture
def receivable_queries():
    return LedgerQueries(RECEIVABLE_ADAPTER)


@pytest.fixture
def new_record():
    """Factory for create payloads with sensible defaults."""
    def _build(counterparty_id, original="1000.00", due=date(2030, 1, 10), **overrides):
        data = {
            "counterparty_id": counterparty_id,
            "invoice_number": "INV-1001",
            "original_amount": Decimal(original),
            "issue_date": date(2029, 12, 1),
            "due_date": due,
        }
        data.update(overrides)
        return LedgerRecordCreate(**data)
    return _build


# Tokens

def make_token(role: UserRole, user_id: int, username: str) -> str:
    return create_access_token(data={"sub": username, "user_id": user_id, "role": role.value})


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token(UserRole.ADMIN, 1, 'admin')}"}


@pytest.fixture
def manager_headers():
    return {"Authorization": f"Bearer {make_token(UserRole.MANAGER, 20, 'manager')}"}


@pytest.fixture
def accountant_headers():
    return {"Authorization": f"Bearer {make_token(UserRole.ACCOUNTANT, 10, 'accountant')}"}


@pytest.fixture
def viewer_headers():
    return {"Authorization": f"Bearer {make_token(UserRole.VIEWER, 30, 'viewer')}"}
