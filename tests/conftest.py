import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.clock import Clock, fixed_clock, get_clock
from app.core.exceptions import StoreError
from app.core.models import LedgerDocument  # noqa: F401  registers the table
from app.db.document_store import Filter, LedgerStore, OrderBy, SqlDocumentStore, WriteBatch, get_store
from app.db.session import Base
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2025, 9, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture()
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture()
def store(session_factory: async_sessionmaker) -> SqlDocumentStore:
    return SqlDocumentStore(session_factory)


@pytest.fixture()
def clock() -> Clock:
    return fixed_clock(NOW)


class _FailingBatch(WriteBatch):
    async def commit(self) -> None:
        raise StoreError("Store write failed: unavailable")


class FailingStore(LedgerStore):
    """Every call fails the way an unreachable store would."""

    def batch(self) -> WriteBatch:
        return _FailingBatch()

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise StoreError("Store read failed: unavailable")

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
    ) -> List[Dict[str, Any]]:
        raise StoreError("Store query failed: unavailable")


@pytest.fixture()
def failing_store() -> FailingStore:
    return FailingStore()


@pytest.fixture()
async def client(store: SqlDocumentStore, clock: Clock) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, backed by the test store."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
