"""Pytest configuration and fixtures."""

import os
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["DEBUG"] = "true"
os.environ["KEY_SALT"] = "test-salt"

from swapagent.chain.types import TxReceipt
from swapagent.crypto import SecretCodec
from swapagent.ledger.database import create_ledger_engine
from swapagent.ledger.models import Base
from swapagent.ledger.repository import LedgerRepository
from swapagent.signing.base import TransactionSigner
from swapagent.swap.models import NATIVE_TOKEN_ADDRESS, RouteQuote, Token
from swapagent.utils.locks import clear_wallet_locks

WALLET = "0x1111111111111111111111111111111111111111"
ROUTER = "0x2222222222222222222222222222222222222222"
COMMISSION_WALLET = "0x3333333333333333333333333333333333333333"

USDC = Token(
    chain="base",
    symbol="USDC",
    address="0x833589fcd6edb6e08f4c7c32d4f71b54bda02913",
    decimals=6,
)
WETH = Token(
    chain="base",
    symbol="WETH",
    address="0x4200000000000000000000000000000000000006",
    decimals=18,
)
ETH = Token(chain="base", symbol="ETH", address=NATIVE_TOKEN_ADDRESS, decimals=18)


def make_route(amount_out: int, fees=("0.5",), hops: int = 1, integration: str = "uniswap") -> RouteQuote:
    """Route with ``hops`` venues in its distribution."""
    return RouteQuote(
        amount_out=amount_out,
        fees_usd=[Decimal(f) for f in fees],
        route=[{"bridge": integration, "steps": ["allowance", "approve", "send"]}],
        integration=integration,
        distribution={f"venue{i}": 1 / hops for i in range(hops)},
    )


def make_receipt(
    status: int = 1,
    tx_hash: str = "0xswap",
    block_number: int = 100,
    from_address: str = WALLET,
    gas_used: int = 150_000,
    effective_gas_price: int = 10**9,
    logs=(),
) -> TxReceipt:
    return TxReceipt(
        transaction_hash=tx_hash,
        status=status,
        block_number=block_number,
        from_address=from_address,
        to_address=ROUTER,
        gas_used=gas_used,
        effective_gas_price=effective_gas_price,
        logs=tuple(logs),
    )


@pytest.fixture(autouse=True)
def reset_wallet_locks():
    """Clear wallet locks before each test."""
    clear_wallet_locks()
    yield
    clear_wallet_locks()


@pytest.fixture
def signer():
    """Signer bound to the test wallet."""
    mock = MagicMock(spec=TransactionSigner)
    mock.address = WALLET
    mock.sign_transaction.return_value = b"\x02\xf8"
    return mock


@pytest.fixture
def codec() -> SecretCodec:
    return SecretCodec("test-salt")


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_ledger_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger_repo(db_session: AsyncSession) -> LedgerRepository:
    """Create ledger repository for testing."""
    return LedgerRepository(db_session)
