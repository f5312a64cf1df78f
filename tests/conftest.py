"""
Shared fixtures: an in-memory database per test, users, RFQs, funded
suppliers and an HTTP client wired to a fake redis.
"""
from datetime import datetime, timezone

import fakeredis
import pytest
from httpx import ASGITransport, AsyncClient
from tortoise import Tortoise

from core.security import create_access_token
from init_db import MODEL_MODULES
from models.credit import CreditLogType
from models.rfq import RFQ
from models.user import User, UserRole
from services.credit_ledger import CreditLedger
from services.idempotency import IdempotencyService
from services.quote_service import QuoteService

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
async def db():
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": MODEL_MODULES},
        use_tz=True,
        timezone="UTC"
    )
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


async def make_user(role: UserRole, name: str) -> User:
    return await User.create(
        email=f"{name.lower().replace(' ', '.')}@example.com",
        company_name=name,
        role=role,
        bank_name="Shinhan" if role == UserRole.SUPPLIER else None,
        bank_account="110-123-456789" if role == UserRole.SUPPLIER else None,
        bank_holder=name if role == UserRole.SUPPLIER else None
    )


@pytest.fixture
async def buyer(db):
    return await make_user(UserRole.BUYER, "Acme Foods")


@pytest.fixture
async def supplier(db):
    return await make_user(UserRole.SUPPLIER, "Busan Packaging")


@pytest.fixture
async def other_supplier(db):
    return await make_user(UserRole.SUPPLIER, "Daegu Boxes")


@pytest.fixture
async def admin(db):
    return await make_user(UserRole.ADMIN, "Platform Admin")


async def make_rfq(buyer: User, quantity: int = 100, title: str = "Paper cups") -> RFQ:
    return await RFQ.create(buyer_id=buyer.id, title=title, quantity=quantity)


@pytest.fixture
async def rfq(buyer):
    return await make_rfq(buyer)


async def fund(supplier: User, amount: int):
    return await CreditLedger.credit(supplier.id, amount, "Test top-up", entry_type=CreditLogType.CHARGE)


async def submit(supplier: User, rfq: RFQ, unit_price: int = 10_000, now: datetime = T0):
    """Quote ``unit_price`` per unit; returns (quote, room)."""
    return await QuoteService().submit_quote(supplier, rfq.id, unit_price, now=now)


@pytest.fixture
def fake_redis():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def idempotency(fake_redis):
    return IdempotencyService(fake_redis, ttl_seconds=60)


def auth_headers(user: User, **extra) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}", **extra}


@pytest.fixture
async def client(db, idempotency):
    from api.deps import get_idempotency_service
    from main import app

    app.dependency_overrides[get_idempotency_service] = lambda: idempotency
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
