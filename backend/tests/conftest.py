"""Shared fixtures: a throwaway SQLite database per test."""
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import copytrade.models  # noqa: F401
from copytrade.database import Base
from copytrade.models.copy_trade import CopyTrade, CopyTradeStatus, TradeSide


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'copytrade_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


def make_trade(**overrides) -> CopyTrade:
    """Build a ledger record with sensible defaults."""
    values = dict(
        user_id=1,
        source_wallet="0xwhale",
        source_trade_hash="0xsource",
        market_condition_id="cond-1",
        market_title="Test Market",
        side=TradeSide.BUY,
        size=100.0,
        price=0.5,
        status=CopyTradeStatus.executed,
        order_id=None,
        tx_hash=None,
        error_message=None,
    )
    values.update(overrides)
    if "created_at" not in values:
        values["created_at"] = datetime.now(timezone.utc)
    return CopyTrade(**values)
