"""Copy trade ledger: every copy attempt, its status, and daily volume views.

Records are appended when a copy decision is made. A ``pending`` record moves
exactly once to ``executed`` or ``failed``; ``skipped`` records are written in
their terminal state. Today's confirmed volume is the one figure both the
daily-limit check and reporting read, so both go through ``_confirmed_volume``.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone, timedelta, tzinfo
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo
from sqlalchemy import select, update, func, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from copytrade.config import get_settings
from copytrade.models.copy_trade import (
    CopyTrade, CopyTradeStatus, ReasonCode, TradeSide,
)

settings = get_settings()
logger = logging.getLogger(__name__)

# In-flight BUYs younger than this still count against the per-market cap
PENDING_GRACE = timedelta(minutes=5)


class DuplicateCopyTradeError(Exception):
    """A record for this (user, source trade) pair already exists."""

    def __init__(self, user_id: int, source_trade_hash: str):
        super().__init__(f"Copy trade already recorded for user {user_id}, source trade {source_trade_hash}")
        self.user_id = user_id
        self.source_trade_hash = source_trade_hash


class InvalidStatusTransitionError(Exception):
    pass


def _ledger_tz() -> Optional[tzinfo]:
    if settings.ledger_timezone:
        return ZoneInfo(settings.ledger_timezone)
    return None


def _localize(wall: datetime, tz: Optional[tzinfo]) -> datetime:
    # the system zone is resolved per wall time so DST change days get the right offset
    if tz is None:
        return wall.astimezone()
    return wall.replace(tzinfo=tz)


def day_window(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Return the UTC bounds [start, end) of the calendar day containing ``now``."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    tz = _ledger_tz()
    local_now = now.astimezone(tz)
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    start = _localize(midnight, tz)
    end = _localize(midnight + timedelta(days=1), tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def _confirmed_filter(user_id: int, start: datetime, end: datetime):
    return and_(
        CopyTrade.user_id == user_id,
        CopyTrade.status == CopyTradeStatus.executed,
        CopyTrade.tx_hash.isnot(None),
        CopyTrade.created_at >= start,
        CopyTrade.created_at < end,
    )


async def _confirmed_volume(db: AsyncSession, user_id: int, start: datetime, end: datetime) -> float:
    result = await db.execute(
        select(func.coalesce(func.sum(CopyTrade.size), 0.0)).where(
            _confirmed_filter(user_id, start, end)
        )
    )
    return float(result.scalar() or 0.0)


async def find_trade(db: AsyncSession, user_id: int, source_trade_hash: str) -> Optional[CopyTrade]:
    result = await db.execute(
        select(CopyTrade).where(
            CopyTrade.user_id == user_id,
            CopyTrade.source_trade_hash == source_trade_hash,
        )
    )
    return result.scalar_one_or_none()


async def log_trade(db: AsyncSession, record: CopyTrade) -> int:
    """Append a record and return its id.

    Raises DuplicateCopyTradeError if a record for the same (user, source trade)
    already exists; any other constraint failure propagates. The session is
    rolled back in both cases.
    """
    user_id, source_trade_hash = record.user_id, record.source_trade_hash
    db.add(record)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        if await find_trade(db, user_id, source_trade_hash) is not None:
            raise DuplicateCopyTradeError(user_id, source_trade_hash)
        raise
    return record.id


async def get_history(db: AsyncSession, user_id: int, limit: Optional[int] = None) -> List[CopyTrade]:
    if limit is None:
        limit = settings.copy_trade_history_limit
    result = await db.execute(
        select(CopyTrade)
        .where(CopyTrade.user_id == user_id)
        .order_by(CopyTrade.id.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def update_status(
    db: AsyncSession,
    trade_id: int,
    status: CopyTradeStatus,
    order_id: Optional[str] = None,
    tx_hash: Optional[str] = None,
    error_message: Optional[str] = None,
    reason_code: Optional[ReasonCode] = None,
) -> None:
    """Move a pending record to ``executed`` or ``failed``."""
    status = CopyTradeStatus(status)
    if status not in (CopyTradeStatus.executed, CopyTradeStatus.failed):
        raise InvalidStatusTransitionError(f"Cannot move a pending trade to {status.value}")

    result = await db.execute(
        update(CopyTrade)
        .where(CopyTrade.id == trade_id, CopyTrade.status == CopyTradeStatus.pending)
        .values(
            status=status,
            order_id=order_id,
            tx_hash=tx_hash,
            error_message=error_message,
            reason_code=reason_code,
            executed_at=datetime.now(timezone.utc),
        )
    )
    if result.rowcount == 0:
        existing = await db.get(CopyTrade, trade_id)
        if existing is None:
            raise LookupError(f"Copy trade {trade_id} not found")
        raise InvalidStatusTransitionError(
            f"Copy trade {trade_id} is already {existing.status.value}"
        )
    await db.flush()


async def get_todays_volume(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> float:
    """Sum of confirmed (executed with a tx hash) size in the current calendar day."""
    start, end = day_window(now)
    return await _confirmed_volume(db, user_id, start, end)


async def get_todays_breakdown(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> dict:
    start, end = day_window(now)
    result = await db.execute(
        select(CopyTrade)
        .where(
            CopyTrade.user_id == user_id,
            CopyTrade.created_at >= start,
            CopyTrade.created_at < end,
        )
        .order_by(CopyTrade.id.desc())
    )
    trades = result.scalars().all()
    executed_total = sum(t.size for t in trades if t.status == CopyTradeStatus.executed)
    return {
        "trades": [
            {
                "id": t.id,
                "market_title": t.market_title,
                "side": t.side.value,
                "size": t.size,
                "status": t.status.value,
                "has_tx_hash": t.tx_hash is not None,
            }
            for t in trades
        ],
        "executed_total": executed_total,
        "confirmed_total": await _confirmed_volume(db, user_id, start, end),
    }


async def get_market_total(db: AsyncSession, user_id: int, market_condition_id: str) -> float:
    """BUY notional placed on one market: confirmed fills plus recent in-flight orders."""
    pending_cutoff = datetime.now(timezone.utc) - PENDING_GRACE
    result = await db.execute(
        select(func.coalesce(func.sum(CopyTrade.size), 0.0)).where(
            CopyTrade.user_id == user_id,
            CopyTrade.market_condition_id == market_condition_id,
            CopyTrade.side == TradeSide.BUY,
            or_(
                and_(CopyTrade.status == CopyTradeStatus.executed, CopyTrade.tx_hash.isnot(None)),
                and_(CopyTrade.status == CopyTradeStatus.pending, CopyTrade.created_at >= pending_cutoff),
            ),
        )
    )
    return float(result.scalar() or 0.0)
