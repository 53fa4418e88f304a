from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Set

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from feeledger.core import models  # noqa: F401
from feeledger.core.clock import FrozenClock
from feeledger.core.exceptions import StoreUnavailableError
from feeledger.core.notifier import ChangeNotifier, FeeEvent
from feeledger.core.schemas import StudentCreate
from feeledger.core.services import FeeLedgerService
from feeledger.db.session import Base, get_db
from feeledger.main import app
from feeledger.stores.base import PaymentStore, StudentStore
from feeledger.stores.sql import SqlPaymentStore, SqlStudentStore


TEST_DATABASE_URL = "sqlite+aiosqlite://"
NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
YESTERDAY = TODAY - timedelta(days=1)
NEXT_MONTH = TODAY + timedelta(days=30)


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test; also overrides the FastAPI session dependency."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async_session = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()
    await engine.dispose()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture()
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture()
def events(notifier: ChangeNotifier) -> List[FeeEvent]:
    """Every event published on `notifier`, in order."""
    received: List[FeeEvent] = []
    notifier.subscribe(None, received.append)
    return received


@pytest.fixture()
def payment_store(db_session: AsyncSession) -> SqlPaymentStore:
    return SqlPaymentStore(db_session)


@pytest.fixture()
def student_store(db_session: AsyncSession) -> SqlStudentStore:
    return SqlStudentStore(db_session)


@pytest.fixture()
def ledger(payment_store, student_store, notifier, clock) -> FeeLedgerService:
    return FeeLedgerService(payment_store, student_store, notifier=notifier, clock=clock)


@pytest.fixture()
async def student(ledger: FeeLedgerService):
    """S1 with total fees 1000 and no payments."""
    return await ledger.add_student(
        StudentCreate(student_id="S1", name="Asha Rao", student_class="5A", total_fees=Decimal("1000"))
    )


@pytest.fixture()
async def client(db_session: AsyncSession, clock: FrozenClock) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    app.state.clock = clock
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class _Flaky:
    """Wraps a store; operations named in `failing` raise StoreUnavailableError instead of running."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.failing: Set[str] = set()
        self.calls: List[str] = []

    async def _call(self, operation: str, *args):
        self.calls.append(operation)
        if operation in self.failing:
            raise StoreUnavailableError()
        return await getattr(self.inner, operation)(*args)


class FlakyPaymentStore(_Flaky, PaymentStore):
    async def create(self, data: Dict[str, Any]):
        return await self._call("create", data)

    async def get(self, payment_id):
        return await self._call("get", payment_id)

    async def list_by_student(self, student_id: str):
        return await self._call("list_by_student", student_id)

    async def list_all(self):
        return await self._call("list_all")

    async def update(self, payment_id, patch: Dict[str, Any]):
        return await self._call("update", payment_id, patch)

    async def delete(self, payment_id) -> None:
        await self._call("delete", payment_id)


class FlakyStudentStore(_Flaky, StudentStore):
    async def create(self, data: Dict[str, Any]):
        return await self._call("create", data)

    async def get(self, student_id: str):
        return await self._call("get", student_id)

    async def list_all(self):
        return await self._call("list_all")

    async def update(self, student_id: str, patch: Dict[str, Any]):
        return await self._call("update", student_id, patch)

    async def delete(self, student_id: str) -> None:
        await self._call("delete", student_id)


@pytest.fixture()
def flaky_payments(payment_store) -> FlakyPaymentStore:
    return FlakyPaymentStore(payment_store)


@pytest.fixture()
def flaky_students(student_store) -> FlakyStudentStore:
    return FlakyStudentStore(student_store)


@pytest.fixture()
def flaky_ledger(flaky_payments, flaky_students, notifier, clock) -> FeeLedgerService:
    return FeeLedgerService(flaky_payments, flaky_students, notifier=notifier, clock=clock)
