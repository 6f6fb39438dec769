"""
Shared test fixtures and configuration for the Paperfolio test suite.
"""

import os

# Settings are read once at import time; configure the test environment first.
os.environ.setdefault("DB_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production-use-only")
os.environ.setdefault("SECURITY_BCRYPT_ROUNDS", "4")
os.environ.setdefault("FINNHUB_STREAM_ENABLED", "false")
os.environ.setdefault("LOG_JSON_FORMAT", "false")

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from paperfolio.database.connection import Base, get_db_session
from paperfolio.database.models import Role, Symbol, Wallet
from paperfolio.dependencies.auth import create_access_token
from paperfolio.services.users import UserService
from paperfolio.utils.helpers import money


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    from paperfolio.database import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_user(session):
    """Create a user with a wallet, optionally overriding the cash balance."""

    async def _make_user(username="alice", password="password123", roles=None, cash=None, email=None):
        user = await UserService(session).create_user(
            username=username,
            password=password,
            email=email,
            roles=roles or [Role.ROLE_USER.value],
        )
        if cash is not None:
            wallet = await session.get(Wallet, user.id)
            wallet.cash_balance = money(Decimal(str(cash)))
            await session.flush()
        return user

    return _make_user


@pytest.fixture
def make_symbol(session):
    async def _make_symbol(ticker="AAPL", name=None, enabled=True, mic="XNAS"):
        symbol = Symbol(
            symbol=ticker,
            name=name or f"{ticker} Inc",
            exchange=mic,
            currency="USD",
            mic=mic,
            enabled=enabled,
        )
        session.add(symbol)
        await session.flush()
        return symbol

    return _make_symbol


def quote(symbol: str, price) -> SimpleNamespace:
    """Minimal stand-in for a provider quote."""
    return SimpleNamespace(symbol=symbol, price=float(price))


@pytest.fixture
def price_service():
    """
    Price service whose quotes are set per test:

        price_service.set_price("AAPL", 150)
    """
    prices = {}
    service = MagicMock()

    async def get_current_price(symbol):
        price = prices.get(symbol)
        return quote(symbol, price) if price is not None else None

    async def get_all_current_prices():
        return {symbol: quote(symbol, price) for symbol, price in prices.items()}

    service.get_current_price = AsyncMock(side_effect=get_current_price)
    service.get_all_current_prices = AsyncMock(side_effect=get_all_current_prices)
    service.set_price = lambda symbol, price: prices.__setitem__(symbol, price)
    return service


@pytest.fixture
def auth_headers():
    """Bearer headers for a user authenticated as `role`."""

    def _auth_headers(user, role: Role = Role.ROLE_USER) -> dict:
        token = create_access_token(user.id, user.username, role.value)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
async def api_client(session_maker):
    """
    HTTP client against the application with the database dependency bound
    to the test engine. Each request commits like production.
    """
    from paperfolio.app import app

    async def override_get_db_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
