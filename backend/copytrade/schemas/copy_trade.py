from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from copytrade.models.copy_subscription import CopyMode
from copytrade.models.copy_trade import CopyTradeStatus, ReasonCode, TradeSide


# -- Source trade events --

class SourceTradeEvent(BaseModel):
    """A trade made by a tracked source wallet, as delivered by trade detection."""
    source_wallet: str = Field(..., min_length=1, max_length=64)
    source_trade_hash: str = Field(..., min_length=1, max_length=128)
    market_condition_id: str = Field(..., min_length=1, max_length=128)
    market_title: str = Field("", max_length=500)
    side: TradeSide
    size: float = Field(..., gt=0)
    price: float = Field(..., ge=0)
    slug: Optional[str] = None

    @field_validator("source_wallet")
    @classmethod
    def normalize_wallet(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("side", mode="before")
    @classmethod
    def upper_side(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


# -- Subscription schemas --

class SubscriptionRequest(BaseModel):
    source_wallet: str = Field(..., min_length=1, max_length=64)
    mode: CopyMode = CopyMode.recommend


class SubscriptionResponse(BaseModel):
    user_id: int
    source_wallet: str
    mode: CopyMode
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# -- Trading account schemas --

class TradingAccountSaveRequest(BaseModel):
    wallet_address: str = Field(..., min_length=1, max_length=64)
    credentials: Dict[str, str] = Field(..., description="Venue API credentials, encrypted before storage")


class TradingSettingsUpdate(BaseModel):
    copy_enabled: Optional[bool] = None
    copy_percentage: Optional[float] = Field(None, gt=0, le=100)
    max_trade_size: Optional[float] = Field(None, gt=0)
    daily_limit: Optional[float] = Field(None, gt=0)
    max_per_market: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def reject_null_required(self) -> "TradingSettingsUpdate":
        """Limits may be cleared with an explicit null; the toggle and percentage may not."""
        for name in ("copy_enabled", "copy_percentage"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class TradingAccountResponse(BaseModel):
    id: int
    user_id: int
    wallet_address: str
    copy_enabled: bool
    copy_percentage: float
    max_trade_size: Optional[float] = None
    daily_limit: Optional[float] = None
    max_per_market: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# -- Ledger schemas --

class CopyTradeResponse(BaseModel):
    id: int
    user_id: int
    source_wallet: str
    source_trade_hash: str
    market_condition_id: str
    market_title: str
    side: TradeSide
    size: float
    price: float
    status: CopyTradeStatus
    order_id: Optional[str] = None
    tx_hash: Optional[str] = None
    error_message: Optional[str] = None
    reason_code: Optional[ReasonCode] = None
    created_at: datetime
    executed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CopyTradeListResponse(BaseModel):
    trades: List[CopyTradeResponse]


class DailyVolumeResponse(BaseModel):
    user_id: int
    volume: float
    daily_limit: Optional[float] = None
    remaining: Optional[float] = None


class BreakdownEntry(BaseModel):
    id: int
    market_title: str
    side: str
    size: float
    status: str
    has_tx_hash: bool


class TodaysBreakdownResponse(BaseModel):
    trades: List[BreakdownEntry]
    executed_total: float
    confirmed_total: float


# -- Misc --

class IgnoredMarketRequest(BaseModel):
    pattern: str = Field(..., min_length=1, max_length=200)

    @field_validator("pattern", mode="before")
    @classmethod
    def strip_pattern(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class CopyLinkResponse(BaseModel):
    url: Optional[str] = None
