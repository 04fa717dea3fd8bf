from __future__ import annotations
import asyncio
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from copytrade.database import get_db
from copytrade.schemas.copy_trade import (
    SourceTradeEvent, SubscriptionRequest, SubscriptionResponse,
    TradingAccountSaveRequest, TradingSettingsUpdate, TradingAccountResponse,
    CopyTradeResponse, CopyTradeListResponse, DailyVolumeResponse,
    TodaysBreakdownResponse, IgnoredMarketRequest, CopyLinkResponse,
)
from copytrade.services import subscription_registry, trading_account_store, trade_ledger
from copytrade.services.credentials import encrypt_credentials
from copytrade.services.ignored_markets import (
    add_ignored_market, list_ignored_markets, remove_ignored_market,
)
from copytrade.services.link_generator import generate_link

router = APIRouter(prefix="/api/copy-trade", tags=["copy-trade"])


# -- Subscriptions --

@router.get("/users/{user_id}/subscriptions", response_model=List[SubscriptionResponse])
async def get_subscriptions(user_id: int, db: AsyncSession = Depends(get_db)):
    subs = await subscription_registry.list_subscriptions(db, user_id)
    return [SubscriptionResponse.model_validate(s) for s in subs]


@router.put("/users/{user_id}/subscriptions")
async def subscribe(user_id: int, req: SubscriptionRequest, db: AsyncSession = Depends(get_db)):
    ok = await subscription_registry.subscribe(db, user_id, req.source_wallet, req.mode)
    return {"success": ok}


@router.delete("/users/{user_id}/subscriptions/{source_wallet}")
async def unsubscribe(user_id: int, source_wallet: str, db: AsyncSession = Depends(get_db)):
    ok = await subscription_registry.unsubscribe(db, user_id, source_wallet)
    return {"success": ok}


# -- Trading account --

@router.put("/users/{user_id}/account", response_model=TradingAccountResponse)
async def save_account(
    user_id: int,
    req: TradingAccountSaveRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        encrypted = encrypt_credentials(req.credentials)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    account = await trading_account_store.save_account(db, user_id, req.wallet_address, encrypted)
    return TradingAccountResponse.model_validate(account)


@router.get("/users/{user_id}/account", response_model=TradingAccountResponse)
async def get_account(user_id: int, db: AsyncSession = Depends(get_db)):
    account = await trading_account_store.get_account(db, user_id)
    if not account:
        raise HTTPException(status_code=404, detail="No trading account found")
    return TradingAccountResponse.model_validate(account)


@router.patch("/users/{user_id}/account/settings", response_model=TradingAccountResponse)
async def update_settings(
    user_id: int,
    updates: TradingSettingsUpdate,
    db: AsyncSession = Depends(get_db),
):
    account = await trading_account_store.update_settings(db, user_id, updates)
    if not account:
        raise HTTPException(status_code=404, detail="No trading account found")
    return TradingAccountResponse.model_validate(account)


@router.delete("/users/{user_id}/account")
async def delete_account(user_id: int, db: AsyncSession = Depends(get_db)):
    ok = await trading_account_store.delete_account(db, user_id)
    return {"success": ok}


# -- Ledger --

@router.get("/users/{user_id}/trades", response_model=CopyTradeListResponse)
async def list_trades(
    user_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    trades = await trade_ledger.get_history(db, user_id, limit)
    return CopyTradeListResponse(trades=[CopyTradeResponse.model_validate(t) for t in trades])


@router.get("/users/{user_id}/volume/today", response_model=DailyVolumeResponse)
async def todays_volume(user_id: int, db: AsyncSession = Depends(get_db)):
    volume = await trade_ledger.get_todays_volume(db, user_id)
    account = await trading_account_store.get_account(db, user_id)
    daily_limit = account.daily_limit if account else None
    remaining = max(0.0, daily_limit - volume) if daily_limit is not None else None
    return DailyVolumeResponse(user_id=user_id, volume=volume, daily_limit=daily_limit, remaining=remaining)


@router.get("/users/{user_id}/volume/today/breakdown", response_model=TodaysBreakdownResponse)
async def todays_breakdown(user_id: int, db: AsyncSession = Depends(get_db)):
    return TodaysBreakdownResponse(**await trade_ledger.get_todays_breakdown(db, user_id))


# -- Ignored markets --

@router.get("/users/{user_id}/ignored-markets", response_model=List[str])
async def get_ignored_markets(user_id: int, db: AsyncSession = Depends(get_db)):
    return await list_ignored_markets(db, user_id)


@router.post("/users/{user_id}/ignored-markets")
async def ignore_market(user_id: int, req: IgnoredMarketRequest, db: AsyncSession = Depends(get_db)):
    ok = await add_ignored_market(db, user_id, req.pattern)
    return {"success": ok}


@router.delete("/users/{user_id}/ignored-markets/{pattern}")
async def unignore_market(user_id: int, pattern: str, db: AsyncSession = Depends(get_db)):
    ok = await remove_ignored_market(db, user_id, pattern)
    return {"success": ok}


# -- Source trade intake --

@router.post("/events", status_code=status.HTTP_202_ACCEPTED)
async def enqueue_source_trade(event: SourceTradeEvent, request: Request):
    queue: Optional[asyncio.Queue] = getattr(request.app.state, "copy_trade_queue", None)
    if queue is None:
        raise HTTPException(status_code=503, detail="Copy trade worker is not running")
    try:
        queue.put_nowait(event)
    except asyncio.QueueFull:
        raise HTTPException(status_code=503, detail="Copy trade queue is full")
    return {"accepted": True, "source_trade_hash": event.source_trade_hash}


@router.get("/link", response_model=CopyLinkResponse)
async def market_link(slug: Optional[str] = None):
    return CopyLinkResponse(url=generate_link({"slug": slug}))
