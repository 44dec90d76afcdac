import os
from datetime import datetime, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

os.environ.setdefault("MONGODB_DB_NAME", "minevault_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")

T0 = datetime(2026, 1, 1, 12, 0, 0)


class FakeClock:
    """Deterministic clock: returns `now`, advanced explicitly or by `step` per call."""

    def __init__(self, start: datetime = T0, step: float = 0.0):
        self.now = start
        self.step = timedelta(seconds=step)

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now

    def __call__(self) -> datetime:
        self.now += self.step
        return self.now


@pytest_asyncio.fixture(autouse=True)
async def db():
    """Fresh in-memory database per test."""
    from app.db.init import init_db
    from app.services import prices

    prices._last_known.clear()
    database = AsyncMongoMockClient()["minevault_test"]
    await init_db(database)
    yield database


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def user():
    from app.models.user import User
    u = User(google_sub="sub-user", email="miner@example.com", name="Miner")
    await u.insert()
    return u


@pytest_asyncio.fixture
async def admin():
    from app.models.user import User
    u = User(google_sub="sub-admin", email="admin@example.com", name="Admin", role="admin")
    await u.insert()
    return u


@pytest_asyncio.fixture
async def pro_plan():
    from app.services import plans as plans_service
    return await plans_service.create_plan(
        name="Pro Plan",
        price=50,
        mining_rate=5.0,
        daily_rate=0.00002800,
        contract_period_days=365,
    )


async def make_contract(user_id, plan, start: datetime = T0, seconds: float | None = None):
    """Active contract for plan starting at `start`; lasts the plan term unless `seconds` is given."""
    from beanie import PydanticObjectId
    from app.models.mining_contract import MiningContract

    end = start + (timedelta(seconds=seconds) if seconds is not None else timedelta(days=plan.contract_period_days))
    contract = MiningContract(
        user_id=user_id,
        plan_id=plan.id,
        deposit_id=PydanticObjectId(),
        start_date=start,
        end_date=end,
    )
    await contract.insert()
    return contract


async def credit(user_id, amount: float, at: datetime = T0):
    """Write a ledger credit directly (as the accrual job would)."""
    from beanie import PydanticObjectId
    from app.models.earnings_ledger import EarningsLedgerEntry

    entry = EarningsLedgerEntry(
        contract_id=PydanticObjectId(),
        user_id=user_id,
        timestamp=at,
        bucket=0,
        period_start=at,
        period_end=at,
        amount=amount,
        usd_value=amount * 45000,
    )
    await entry.insert()
    return entry


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    from app.main import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


def login(client: AsyncClient, user) -> None:
    from app.core.security import create_session_cookie
    from app.deps import SESSION_COOKIE_NAME

    client.cookies.set(
        SESSION_COOKIE_NAME,
        create_session_cookie({"user_id": str(user.id), "session_version": user.session_version}),
    )
