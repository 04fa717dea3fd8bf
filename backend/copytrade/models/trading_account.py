from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Float, Integer, Boolean, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column
from copytrade.database import Base

# Risk settings applied only when an account is first created
DEFAULT_COPY_ENABLED = False
DEFAULT_COPY_PERCENTAGE = 10.0


class TradingAccount(Base):
    __tablename__ = "trading_accounts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True, index=True)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    encrypted_credentials: Mapped[str] = mapped_column(Text, nullable=False)
    copy_enabled: Mapped[bool] = mapped_column(Boolean, default=DEFAULT_COPY_ENABLED, nullable=False)
    copy_percentage: Mapped[float] = mapped_column(
        Float, default=DEFAULT_COPY_PERCENTAGE, nullable=False
    )
    max_trade_size: Mapped[Optional[float]] = mapped_column(Float, nullable=True, default=None)
    daily_limit: Mapped[Optional[float]] = mapped_column(Float, nullable=True, default=None)
    max_per_market: Mapped[Optional[float]] = mapped_column(Float, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @classmethod
    def create(cls, user_id: int, wallet_address: str, encrypted_credentials: str) -> "TradingAccount":
        """Build a new account with the default risk settings filled in."""
        return cls(
            user_id=user_id,
            wallet_address=wallet_address,
            encrypted_credentials=encrypted_credentials,
            copy_enabled=DEFAULT_COPY_ENABLED,
            copy_percentage=DEFAULT_COPY_PERCENTAGE,
            max_trade_size=None,
            daily_limit=None,
            max_per_market=None,
        )
