import asyncio
import gc

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import make_trade
from copytrade.models.copy_trade import CopyTradeStatus, ReasonCode
from copytrade.schemas.copy_trade import SourceTradeEvent
from copytrade.services import copy_trade_executor
from copytrade.services.copy_trade_executor import (
    CopyTradeCoordinator, CopyTradeProcessingError, compute_copy_size,
)
from copytrade.services.ignored_markets import add_ignored_market
from copytrade.services.order_execution import OrderExecutionError, OrderResult
from copytrade.services.subscription_registry import subscribe
from copytrade.services.trade_ledger import get_history, get_todays_volume, log_trade
from copytrade.services.trading_account_store import save_account, update_settings
from copytrade.models.trading_account import TradingAccount


class FakeExecutor:
    def __init__(self, tx_hash="0xfill", fail_wallets=(), delay=0.0):
        self.tx_hash = tx_hash
        self.fail_wallets = set(fail_wallets)
        self.delay = delay
        self.calls = []

    async def place_order(self, request):
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if request.wallet_address in self.fail_wallets:
            raise OrderExecutionError("Insufficient balance")
        return OrderResult(order_id=f"ord-{len(self.calls)}", tx_hash=self.tx_hash)


class FakeNotifier:
    def __init__(self):
        self.sent = []

    async def notify(self, event, user_ids):
        self.sent.append((event.source_trade_hash, list(user_ids)))


def source_trade(trade_hash="0xsrc1", size=300.0, **overrides) -> SourceTradeEvent:
    values = dict(
        source_wallet="0xWhale",
        source_trade_hash=trade_hash,
        market_condition_id="cond-1",
        market_title="Will BTC hit 100k?",
        side="BUY",
        size=size,
        price=0.5,
    )
    values.update(overrides)
    return SourceTradeEvent(**values)


async def enroll(session_factory, user_id, mode="auto", copy_enabled=True, **risk):
    async with session_factory() as db:
        await subscribe(db, user_id, "0xwhale", mode)
        await save_account(db, user_id, f"0xuser{user_id}", "creds")
        await update_settings(db, user_id, {"copy_enabled": copy_enabled, **risk})
        await db.commit()


async def history(session_factory, user_id):
    async with session_factory() as db:
        return await get_history(db, user_id)


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def coordinator(executor, session_factory):
    return CopyTradeCoordinator(executor, session_factory=session_factory)


class TestComputeCopySize:
    def test_percentage(self):
        account = TradingAccount(copy_percentage=10.0, max_trade_size=None)
        assert compute_copy_size(300, account) == pytest.approx(30)

    def test_capped_by_max_trade_size(self):
        account = TradingAccount(copy_percentage=50.0, max_trade_size=20.0)
        assert compute_copy_size(300, account) == pytest.approx(20)


class TestExecution:
    async def test_executes_sized_order(self, coordinator, executor, session_factory):
        await enroll(session_factory, 1, copy_percentage=10)

        stats = await coordinator.process_source_trade(source_trade())

        assert stats.executed == 1
        assert stats.total_copy_size == pytest.approx(30)
        assert len(executor.calls) == 1
        assert executor.calls[0].size == pytest.approx(30)
        assert executor.calls[0].wallet_address == "0xuser1"

        [trade] = await history(session_factory, 1)
        assert trade.status == CopyTradeStatus.executed
        assert trade.size == pytest.approx(30)
        assert trade.order_id == "ord-1"
        assert trade.tx_hash == "0xfill"
        assert trade.source_wallet == "0xwhale"

    async def test_max_trade_size_clamp(self, coordinator, executor, session_factory):
        await enroll(session_factory, 1, copy_percentage=50, max_trade_size=20)

        await coordinator.process_source_trade(source_trade())

        [trade] = await history(session_factory, 1)
        assert trade.size == pytest.approx(20)
        assert executor.calls[0].size == pytest.approx(20)

    async def test_disabled_account_not_copied(self, coordinator, executor, session_factory):
        await enroll(session_factory, 1, copy_enabled=False)

        stats = await coordinator.process_source_trade(source_trade())

        assert stats.executed == 0
        assert executor.calls == []
        assert await history(session_factory, 1) == []

    async def test_subscriber_without_account_not_copied(self, coordinator, executor, session_factory):
        async with session_factory() as db:
            await subscribe(db, 1, "0xwhale", "auto")
            await db.commit()

        await coordinator.process_source_trade(source_trade())

        assert executor.calls == []
        assert await history(session_factory, 1) == []

    async def test_recommend_mode_is_handed_off(self, executor, session_factory):
        notifier = FakeNotifier()
        coordinator = CopyTradeCoordinator(executor, session_factory=session_factory, notifier=notifier)
        await enroll(session_factory, 1, mode="recommend")

        stats = await coordinator.process_source_trade(source_trade())

        assert stats.recommended == 1
        assert notifier.sent == [("0xsrc1", [1])]
        assert executor.calls == []
        assert await history(session_factory, 1) == []

    async def test_unconfirmed_fill_does_not_count_toward_volume(self, session_factory):
        executor = FakeExecutor(tx_hash=None)
        coordinator = CopyTradeCoordinator(executor, session_factory=session_factory)
        await enroll(session_factory, 1, copy_percentage=10)

        await coordinator.process_source_trade(source_trade())

        [trade] = await history(session_factory, 1)
        assert trade.status == CopyTradeStatus.executed
        assert trade.tx_hash is None
        async with session_factory() as db:
            assert await get_todays_volume(db, 1) == 0.0


class TestDailyLimit:
    async def test_over_limit_is_skipped_without_submitting(self, coordinator, executor, session_factory):
        await enroll(session_factory, 1, copy_percentage=50, daily_limit=100)

        stats = await coordinator.process_source_trade(source_trade(size=300))

        assert stats.skipped == 1
        assert executor.calls == []
        [trade] = await history(session_factory, 1)
        assert trade.status == CopyTradeStatus.skipped
        assert trade.size == pytest.approx(150)
        assert trade.reason_code == ReasonCode.daily_limit_exceeded
        assert "Daily limit exceeded" in trade.error_message

    async def test_limit_is_cumulative(self, coordinator, executor, session_factory):
        await enroll(session_factory, 1, copy_percentage=100, daily_limit=100)

        await coordinator.process_source_trade(source_trade("0xa", size=60))
        await coordinator.process_source_trade(source_trade("0xb", size=60))

        statuses = [t.status for t in await history(session_factory, 1)]
        assert statuses == [CopyTradeStatus.skipped, CopyTradeStatus.executed]
        assert len(executor.calls) == 1
        async with session_factory() as db:
            assert await get_todays_volume(db, 1) == pytest.approx(60)

    async def test_concurrent_events_for_same_user_respect_limit(self, session_factory):
        executor = FakeExecutor(delay=0.05)
        coordinator = CopyTradeCoordinator(executor, session_factory=session_factory)
        await enroll(session_factory, 1, copy_percentage=100, daily_limit=100)

        await asyncio.gather(
            coordinator.process_source_trade(source_trade("0xa", size=60)),
            coordinator.process_source_trade(source_trade("0xb", size=60)),
        )

        statuses = sorted(t.status.value for t in await history(session_factory, 1))
        assert statuses == ["executed", "skipped"]
        assert len(executor.calls) == 1


class TestRedelivery:
    async def test_same_event_copied_once(self, coordinator, executor, session_factory):
        await enroll(session_factory, 1, copy_percentage=10)

        await coordinator.process_source_trade(source_trade())
        stats = await coordinator.process_source_trade(source_trade())

        assert stats.duplicates == 1
        assert len(executor.calls) == 1
        assert len(await history(session_factory, 1)) == 1

    async def test_skipped_event_not_recorded_twice(self, coordinator, executor, session_factory):
        await enroll(session_factory, 1, copy_percentage=50, daily_limit=100)

        await coordinator.process_source_trade(source_trade())
        await coordinator.process_source_trade(source_trade())

        [trade] = await history(session_factory, 1)
        assert trade.status == CopyTradeStatus.skipped


    async def test_two_coordinators_share_one_attempt(self, session_factory):
        executor = FakeExecutor(delay=0.05)
        first = CopyTradeCoordinator(executor, session_factory=session_factory)
        second = CopyTradeCoordinator(executor, session_factory=session_factory)
        await enroll(session_factory, 1, copy_percentage=10)

        results = await asyncio.gather(
            first.process_source_trade(source_trade()),
            second.process_source_trade(source_trade()),
        )

        assert sum(r.executed for r in results) == 1
        assert sum(r.duplicates for r in results) == 1
        assert len(executor.calls) == 1
        assert len(await history(session_factory, 1)) == 1


class TestFailureIsolation:
    async def test_execution_failure_recorded_and_others_proceed(self, session_factory):
        executor = FakeExecutor(fail_wallets={"0xuser1"})
        coordinator = CopyTradeCoordinator(executor, session_factory=session_factory)
        await enroll(session_factory, 1, copy_percentage=10)
        await enroll(session_factory, 2, copy_percentage=10)

        stats = await coordinator.process_source_trade(source_trade())

        assert stats.failed == 1
        assert stats.executed == 1
        [failed] = await history(session_factory, 1)
        assert failed.status == CopyTradeStatus.failed
        assert failed.reason_code == ReasonCode.execution_failed
        assert failed.error_message == "Insufficient balance"
        [executed] = await history(session_factory, 2)
        assert executed.status == CopyTradeStatus.executed

    async def test_storage_error_surfaces_after_fan_out(self, coordinator, session_factory, monkeypatch):
        await enroll(session_factory, 1, copy_percentage=10)
        await enroll(session_factory, 2, copy_percentage=10)

        real_get_account = copy_trade_executor.get_account

        async def flaky_get_account(db, user_id):
            if user_id == 1:
                raise SQLAlchemyError("connection reset")
            return await real_get_account(db, user_id)

        monkeypatch.setattr(copy_trade_executor, "get_account", flaky_get_account)

        with pytest.raises(CopyTradeProcessingError) as exc_info:
            await coordinator.process_source_trade(source_trade())

        assert set(exc_info.value.errors) == {1}
        assert exc_info.value.stats.executed == 1
        [trade] = await history(session_factory, 2)
        assert trade.status == CopyTradeStatus.executed


class TestUserLocks:
    async def test_locks_released_after_processing(self, coordinator, session_factory):
        await enroll(session_factory, 1, copy_percentage=10)
        await enroll(session_factory, 2, copy_percentage=10)

        await coordinator.process_source_trade(source_trade())
        gc.collect()

        assert len(coordinator._user_locks) == 0


class TestMarketFilters:
    async def test_ignored_market_not_copied(self, coordinator, executor, session_factory):
        await enroll(session_factory, 1, copy_percentage=10)
        async with session_factory() as db:
            await add_ignored_market(db, 1, "btc")
            await db.commit()

        await coordinator.process_source_trade(source_trade())

        assert executor.calls == []
        assert await history(session_factory, 1) == []

    async def test_size_reduced_to_market_remainder(self, coordinator, executor, session_factory):
        await enroll(session_factory, 1, copy_percentage=100, max_per_market=50)
        async with session_factory() as db:
            await log_trade(db, make_trade(source_trade_hash="0xearlier", size=30, tx_hash="0xtx"))
            await db.commit()

        await coordinator.process_source_trade(source_trade(size=40))

        assert executor.calls[0].size == pytest.approx(20)

    async def test_market_limit_reached(self, coordinator, executor, session_factory):
        await enroll(session_factory, 1, copy_percentage=100, max_per_market=50)
        async with session_factory() as db:
            await log_trade(db, make_trade(source_trade_hash="0xearlier", size=50, tx_hash="0xtx"))
            await db.commit()

        stats = await coordinator.process_source_trade(source_trade(size=40))

        assert stats.skipped == 1
        assert executor.calls == []
        latest = (await history(session_factory, 1))[0]
        assert latest.reason_code == ReasonCode.market_limit_reached
