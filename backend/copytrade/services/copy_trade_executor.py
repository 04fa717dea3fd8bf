from __future__ import annotations
import asyncio
import enum
import logging
import weakref
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from copytrade.database import async_session
from copytrade.models.copy_subscription import CopyMode
from copytrade.models.copy_trade import CopyTrade, CopyTradeStatus, ReasonCode, TradeSide
from copytrade.models.trading_account import TradingAccount
from copytrade.schemas.copy_trade import SourceTradeEvent
from copytrade.services.ignored_markets import should_ignore_market
from copytrade.services.order_execution import OrderExecutor, OrderRequest
from copytrade.services.subscription_registry import get_subscribers_for_wallet
from copytrade.services.trading_account_store import get_account
from copytrade.services.trade_ledger import (
    DuplicateCopyTradeError, find_trade, get_market_total, get_todays_volume,
    log_trade, update_status,
)

logger = logging.getLogger(__name__)


class SubscriberOutcome(str, enum.Enum):
    not_participating = "not_participating"
    ignored = "ignored"
    duplicate = "duplicate"
    skipped = "skipped"
    executed = "executed"
    failed = "failed"


@dataclass
class CopyRunStats:
    recommended: int = 0
    executed: int = 0
    failed: int = 0
    skipped: int = 0
    duplicates: int = 0
    total_copy_size: float = 0.0


class CopyTradeProcessingError(Exception):
    """Raised after fan-out when one or more subscribers hit an unexpected error."""

    def __init__(self, errors: Dict[int, Exception], stats: CopyRunStats):
        users = ", ".join(str(u) for u in errors)
        super().__init__(f"Copy trade processing failed for users: {users}")
        self.errors = errors
        self.stats = stats


class RecommendationNotifier(Protocol):
    async def notify(self, event: SourceTradeEvent, user_ids: List[int]) -> None:
        ...


def compute_copy_size(source_size: float, account: TradingAccount) -> float:
    """Scale the source size by the account's copy percentage, capped at max_trade_size."""
    size = source_size * (account.copy_percentage / 100.0)
    if account.max_trade_size is not None and size > account.max_trade_size:
        size = account.max_trade_size
    return size


class CopyTradeCoordinator:
    """Fans a source trade out to its auto-mode subscribers.

    Subscribers are processed concurrently, each with its own session. Work for a
    single user runs under that user's lock from the de-duplication check through
    the final status update, so the confirmed volume read by the daily-limit
    check already includes every earlier order for that user.
    """

    def __init__(
        self,
        executor: OrderExecutor,
        session_factory: Optional[async_sessionmaker] = None,
        notifier: Optional[RecommendationNotifier] = None,
    ):
        self.executor = executor
        self.session_factory = session_factory or async_session
        self.notifier = notifier
        # a lock lives only while some task holds or awaits it
        self._user_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = self._user_locks[user_id] = asyncio.Lock()
        return lock

    async def process_source_trade(self, event: SourceTradeEvent) -> CopyRunStats:
        stats = CopyRunStats()

        async with self.session_factory() as db:
            subscribers = await get_subscribers_for_wallet(db, event.source_wallet)
        auto_users = [s.user_id for s in subscribers if s.mode == CopyMode.auto]
        recommend_users = [s.user_id for s in subscribers if s.mode == CopyMode.recommend]

        if recommend_users and self.notifier is not None:
            try:
                await self.notifier.notify(event, recommend_users)
                stats.recommended = len(recommend_users)
            except Exception as e:
                logger.error(f"Recommendation hand-off failed for {event.source_trade_hash}: {e}")

        if not auto_users:
            return stats

        results = await asyncio.gather(
            *(self._process_subscriber(user_id, event) for user_id in auto_users),
            return_exceptions=True,
        )

        errors: Dict[int, Exception] = {}
        for user_id, result in zip(auto_users, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(
                    f"Error copying trade {event.source_trade_hash} for user {user_id}: {result!r}"
                )
                errors[user_id] = result
                stats.failed += 1
                continue
            outcome, size = result
            if outcome == SubscriberOutcome.executed:
                stats.executed += 1
                stats.total_copy_size += size
            elif outcome == SubscriberOutcome.failed:
                stats.failed += 1
            elif outcome == SubscriberOutcome.skipped:
                stats.skipped += 1
            elif outcome == SubscriberOutcome.duplicate:
                stats.duplicates += 1

        if errors:
            raise CopyTradeProcessingError(errors, stats)
        return stats

    async def _process_subscriber(
        self, user_id: int, event: SourceTradeEvent
    ) -> Tuple[SubscriberOutcome, float]:
        async with self.session_factory() as db:
            if await should_ignore_market(db, user_id, event.market_title):
                logger.debug(f"Ignored market for user {user_id}: {event.market_title}")
                return SubscriberOutcome.ignored, 0.0

            account = await get_account(db, user_id)
            if account is None or not account.copy_enabled:
                return SubscriberOutcome.not_participating, 0.0

            size = compute_copy_size(event.size, account)

            async with self._lock_for(user_id):
                if await find_trade(db, user_id, event.source_trade_hash) is not None:
                    logger.info(
                        f"Source trade {event.source_trade_hash} already handled for user {user_id}"
                    )
                    return SubscriberOutcome.duplicate, 0.0

                rejection, size = await self._check_limits(db, account, event, size)
                if rejection is not None:
                    reason_code, message = rejection
                    record = self._build_record(
                        user_id, event, size, CopyTradeStatus.skipped,
                        error_message=message, reason_code=reason_code,
                    )
                    try:
                        await log_trade(db, record)
                    except DuplicateCopyTradeError:
                        return SubscriberOutcome.duplicate, 0.0
                    await db.commit()
                    logger.info(f"Skipped copy trade for user {user_id}: {message}")
                    return SubscriberOutcome.skipped, size

                return await self._submit(db, account, event, size)

    async def _check_limits(
        self,
        db: AsyncSession,
        account: TradingAccount,
        event: SourceTradeEvent,
        size: float,
    ) -> Tuple[Optional[Tuple[ReasonCode, str]], float]:
        """Apply daily and per-market caps. Returns (rejection, possibly reduced size)."""
        if account.daily_limit is not None:
            copied_today = await get_todays_volume(db, account.user_id)
            if copied_today + size > account.daily_limit:
                return (
                    ReasonCode.daily_limit_exceeded,
                    f"Daily limit exceeded (${copied_today:.2f} + ${size:.2f} > ${account.daily_limit:.2f})",
                ), size

        if account.max_per_market is not None and event.side == TradeSide.BUY:
            market_total = await get_market_total(db, account.user_id, event.market_condition_id)
            remaining = account.max_per_market - market_total
            if remaining <= 0:
                return (
                    ReasonCode.market_limit_reached,
                    f"Market limit reached (${market_total:.2f}/${account.max_per_market:.2f})",
                ), size
            if size > remaining:
                logger.info(
                    f"Reducing copy size from ${size:.2f} to ${remaining:.2f} (market limit)"
                )
                size = remaining

        return None, size

    async def _submit(
        self,
        db: AsyncSession,
        account: TradingAccount,
        event: SourceTradeEvent,
        size: float,
    ) -> Tuple[SubscriberOutcome, float]:
        user_id = account.user_id
        request = OrderRequest(
            wallet_address=account.wallet_address,
            encrypted_credentials=account.encrypted_credentials,
            side=event.side,
            size=size,
            price=event.price,
        )
        record = self._build_record(user_id, event, size, CopyTradeStatus.pending)
        try:
            trade_id = await log_trade(db, record)
        except DuplicateCopyTradeError:
            return SubscriberOutcome.duplicate, 0.0
        # the pending row must be durable before the order leaves
        await db.commit()

        logger.info(
            f"Placing copy order: user={user_id} {event.side.value} ${size:.2f} @ {event.price} "
            f"market={event.market_condition_id}"
        )
        try:
            result = await self.executor.place_order(request)
        except Exception as e:
            reason = str(e) or e.__class__.__name__
            await update_status(
                db, trade_id, CopyTradeStatus.failed,
                error_message=reason, reason_code=ReasonCode.execution_failed,
            )
            await db.commit()
            logger.warning(f"Copy order failed for user {user_id}: {reason}")
            return SubscriberOutcome.failed, 0.0

        await update_status(
            db, trade_id, CopyTradeStatus.executed,
            order_id=result.order_id, tx_hash=result.tx_hash,
        )
        await db.commit()
        logger.info(
            f"Copy order executed: user={user_id} order={result.order_id} tx={result.tx_hash}"
        )
        return SubscriberOutcome.executed, size

    @staticmethod
    def _build_record(
        user_id: int,
        event: SourceTradeEvent,
        size: float,
        status: CopyTradeStatus,
        error_message: Optional[str] = None,
        reason_code: Optional[ReasonCode] = None,
    ) -> CopyTrade:
        return CopyTrade(
            user_id=user_id,
            source_wallet=event.source_wallet,
            source_trade_hash=event.source_trade_hash,
            market_condition_id=event.market_condition_id,
            market_title=event.market_title,
            side=event.side,
            size=size,
            price=event.price,
            status=status,
            error_message=error_message,
            reason_code=reason_code,
        )
