from __future__ import annotations
import enum
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import (
    String, Float, Integer, Text, DateTime, Enum as SAEnum, Index, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column
from copytrade.database import Base


class TradeSide(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class CopyTradeStatus(str, enum.Enum):
    pending = "pending"
    executed = "executed"
    failed = "failed"
    skipped = "skipped"


class ReasonCode(str, enum.Enum):
    daily_limit_exceeded = "daily_limit_exceeded"
    market_limit_reached = "market_limit_reached"
    execution_failed = "execution_failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CopyTrade(Base):
    __tablename__ = "copy_trades"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    source_wallet: Mapped[str] = mapped_column(String(64), nullable=False)
    source_trade_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    market_condition_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    market_title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    side: Mapped[TradeSide] = mapped_column(SAEnum(TradeSide), nullable=False)
    size: Mapped[float] = mapped_column(Float, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[CopyTradeStatus] = mapped_column(
        SAEnum(CopyTradeStatus), default=CopyTradeStatus.pending, nullable=False
    )
    order_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, default=None)
    tx_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, default=None)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    reason_code: Mapped[Optional[ReasonCode]] = mapped_column(
        SAEnum(ReasonCode), nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    executed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    __table_args__ = (
        # at most one attempt per (subscriber, source trade), even under redelivery
        UniqueConstraint("user_id", "source_trade_hash", name="uq_copy_trade_user_source_hash"),
        Index("ix_copy_trades_user_created_status", "user_id", "created_at", "status"),
    )
