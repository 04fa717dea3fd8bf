from __future__ import annotations
import enum
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, Enum as SAEnum, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
from copytrade.database import Base


class CopyMode(str, enum.Enum):
    recommend = "recommend"
    auto = "auto"


class CopySubscription(Base):
    __tablename__ = "copy_subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    source_wallet: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    mode: Mapped[CopyMode] = mapped_column(
        SAEnum(CopyMode), default=CopyMode.recommend, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "source_wallet", name="uq_copy_subscription_user_wallet"),
    )
