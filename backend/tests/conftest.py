"""Pytest fixtures for dispatch backend tests."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fieldserve.config import Settings
from fieldserve.database import Base, get_db
from fieldserve.dependencies import get_mirror_store
from fieldserve.main import app, limiter
from fieldserve.models import ServiceRequest, Worker
from fieldserve.services.dual_store import DualStore
from fieldserve.services.mirror import MirrorStore
from fieldserve.services.sheets_client import SheetsClientError


# Test database URL - SQLite for isolation
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def use_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Make SQLite take the write lock at BEGIN.

    Without this, pysqlite defers BEGIN and two writers can deadlock on lock
    promotion; it also makes SAVEPOINT behave.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class FakeSheetsClient:
    """In-memory spreadsheet with the SheetsClient call surface."""

    def __init__(self, tabs: dict[str, list[list[str]]] | None = None):
        self.tabs: dict[str, list[list[str]]] = {
            name: [list(row) for row in rows] for name, rows in (tabs or {}).items()
        }
        self.fail = False
        self.calls: list[tuple[str, str]] = []

    def _check(self, method: str, tab: str) -> None:
        self.calls.append((method, tab))
        if self.fail:
            raise SheetsClientError("Mirror unavailable")

    async def get_rows(self, tab: str) -> list[list[str]]:
        self._check("get_rows", tab)
        return [list(row) for row in self.tabs.get(tab, [])]

    async def append_row(self, tab: str, values: list[str]) -> None:
        self._check("append_row", tab)
        self.tabs.setdefault(tab, []).append([str(v) for v in values])

    async def update_cells(self, tab: str, cells: list[tuple[int, int, str]]) -> None:
        self._check("update_cells", tab)
        rows = self.tabs.setdefault(tab, [])
        for row_number, col, value in cells:
            while len(rows) < row_number:
                rows.append([])
            row = rows[row_number - 1]
            while len(row) <= col:
                row.append("")
            row[col] = value

    def records(self, tab: str) -> list[dict[str, str]]:
        """Rows of a tab as header-keyed dicts (test assertions only)."""
        rows = self.tabs.get(tab, [])
        if not rows:
            return []
        header = rows[0]
        return [
            {name: (row[i] if i < len(row) else "") for i, name in enumerate(header)}
            for row in rows[1:]
        ]


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        sheets_spreadsheet_id="test-sheet",
        admin_sync_secret="test-secret",
        debug=True,
    )


@pytest_asyncio.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory engine with the full schema created from the models."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    use_immediate_transactions(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def fake_sheets() -> FakeSheetsClient:
    return FakeSheetsClient()


@pytest.fixture
def mirror(fake_sheets: FakeSheetsClient) -> MirrorStore:
    return MirrorStore(client=fake_sheets)


@pytest.fixture
def store(db_session: AsyncSession, mirror: MirrorStore) -> DualStore:
    return DualStore(db_session, mirror, timeout=5.0)


@pytest.fixture
def broken_db() -> MagicMock:
    """Session stand-in whose every statement fails like an unreachable database."""
    session = MagicMock(spec=AsyncSession)
    session.execute = AsyncMock(
        side_effect=OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))
    )
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    return session


@pytest.fixture
def broken_store(broken_db: MagicMock, mirror: MirrorStore) -> DualStore:
    """Dual store whose authoritative side is down; reads come from the mirror."""
    return DualStore(broken_db, mirror, timeout=5.0)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    mirror: MirrorStore,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database and mirror overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mirror_store] = lambda: mirror
    limiter.enabled = False

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest_asyncio.fixture
async def seed_worker(db_session: AsyncSession):
    """Factory inserting a worker into the authoritative store."""

    async def _seed(
        worker_id: str,
        name: str = "Ravi Kumar",
        phone: str = "9876543210",
        city: str = "Delhi",
        status: str = "VERIFIED",
    ) -> Worker:
        worker = Worker(worker_id=worker_id, name=name, phone=phone, city=city, status=status)
        db_session.add(worker)
        await db_session.commit()
        return worker

    return _seed


@pytest_asyncio.fixture
async def seed_request(db_session: AsyncSession):
    """Factory inserting a service request; broadcast unless ``worker_id`` is given."""

    async def _seed(
        request_id: str,
        status: str = "NEW",
        worker_id: str | None = None,
        city: str = "Delhi",
        customer_id: str = "CUST-20260118-0001",
        created_at: datetime | None = None,
        **fields: Any,
    ) -> ServiceRequest:
        request = ServiceRequest(
            request_id=request_id,
            customer_id=customer_id,
            worker_id=worker_id,
            service_type=fields.pop("service_type", "wiring"),
            urgency=fields.pop("urgency", "Normal"),
            status=status,
            city=city,
            customer_name=fields.pop("customer_name", "Test User"),
            created_at=created_at or datetime.now(UTC),
            **fields,
        )
        db_session.add(request)
        await db_session.commit()
        return request

    return _seed


@pytest.fixture
def broadcast_payload() -> dict[str, Any]:
    """Broadcast creation body as a client would send it."""
    return {
        "serviceType": "wiring",
        "urgency": "High",
        "customerName": "Test User",
        "customerPhone": "9998887776",
        "city": "TestCity",
        "pincode": "123456",
    }


@pytest.fixture
def sample_datetime() -> datetime:
    """Sample datetime for testing."""
    return datetime(2026, 1, 18, 10, 0, 0, tzinfo=UTC)
