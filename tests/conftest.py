"""Shared fixtures: an in-memory SQLite ledger per test and an API client on top of it."""

import os

os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_JSON", "false")

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from components.core.database import Base, DatabaseManager, utcnow
from components.core.init_db import get_db
from components.remittance.models import OutgoingRemittance
from components.remittance.repository import LedgerStore
from components.remittance import schemas as remittance_schemas
from components.transaction.repository import TransactionRepository
from components.transaction import schemas as transaction_schemas
from restapi.router import create_app


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return DatabaseManager(engine).get_session()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def store(session):
    return LedgerStore(session)


@pytest.fixture
def transactions(session):
    return TransactionRepository(session)


@pytest.fixture
def make_outgoing(store, session):
    async def _make(amount="1000000", buy_rate="85000", days_old=None, **fields):
        remittance = await store.create_outgoing(
            remittance_schemas.OutgoingRemittanceCreate(
                sender_name=fields.pop("sender_name", "Sender"),
                recipient_name=fields.pop("recipient_name", "Recipient"),
                amount_irr=Decimal(amount),
                buy_rate_cad=Decimal(buy_rate),
                **fields,
            )
        )
        if days_old is not None:
            await session.execute(
                update(OutgoingRemittance)
                .where(OutgoingRemittance.id == remittance.id)
                .values(created_at=utcnow() - timedelta(days=days_old))
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            remittance = await store.require_outgoing(remittance.id)
        return remittance

    return _make


@pytest.fixture
def make_incoming(store):
    async def _make(amount="600000", sell_rate="86500", **fields):
        return await store.create_incoming(
            remittance_schemas.IncomingRemittanceCreate(
                sender_name=fields.pop("sender_name", "Sender"),
                recipient_name=fields.pop("recipient_name", "Recipient"),
                amount_irr=Decimal(amount),
                sell_rate_cad=Decimal(sell_rate),
                **fields,
            )
        )

    return _make


@pytest.fixture
def make_transaction(transactions):
    async def _make(total="1000", currency="CAD", allow_partial_payment=True, client_name="Client"):
        return await transactions.create(
            transaction_schemas.TransactionCreate(
                client_name=client_name,
                total_received=Decimal(total),
                received_currency=currency,
                allow_partial_payment=allow_partial_payment,
            )
        )

    return _make
