from __future__ import annotations
import logging
from typing import Any, Mapping, Optional, Union
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from copytrade.models.trading_account import TradingAccount
from copytrade.schemas.copy_trade import TradingSettingsUpdate

logger = logging.getLogger(__name__)

# Fields a settings patch may touch:
#   copy_enabled    - toggles auto-execution for "auto" subscriptions
#   copy_percentage - percentage of the source trade size applied to mirrored orders
#   max_trade_size  - hard cap on a single mirrored order (None = no cap)
#   daily_limit     - hard cap on confirmed notional per calendar day (None = no cap)
#   max_per_market  - hard cap on confirmed BUY notional per market (None = no cap)
SETTINGS_FIELDS = ("copy_enabled", "copy_percentage", "max_trade_size", "daily_limit", "max_per_market")


async def get_account(db: AsyncSession, user_id: int) -> Optional[TradingAccount]:
    result = await db.execute(select(TradingAccount).where(TradingAccount.user_id == user_id))
    return result.scalar_one_or_none()


async def save_account(
    db: AsyncSession,
    user_id: int,
    wallet_address: str,
    encrypted_credentials: str,
) -> TradingAccount:
    """Create the user's trading account, or replace its wallet and credentials.

    Risk settings of an existing account are left alone; defaults only apply
    on first creation.
    """
    account = await get_account(db, user_id)
    if account is None:
        account = TradingAccount.create(user_id, wallet_address, encrypted_credentials)
        db.add(account)
        logger.info(f"Created trading account for user {user_id}")
    else:
        account.wallet_address = wallet_address
        account.encrypted_credentials = encrypted_credentials
    await db.flush()
    await db.refresh(account)
    return account


async def update_settings(
    db: AsyncSession,
    user_id: int,
    patch: Union[TradingSettingsUpdate, Mapping[str, Any]],
) -> Optional[TradingAccount]:
    """Merge the fields present in ``patch`` into the stored account.

    Returns the updated account, or None if the user has no account.
    """
    if isinstance(patch, TradingSettingsUpdate):
        changes = patch.model_dump(exclude_unset=True)
    else:
        changes = dict(patch)
    unknown = set(changes) - set(SETTINGS_FIELDS)
    if unknown:
        raise ValueError(f"Unrecognized settings: {sorted(unknown)}")

    account = await get_account(db, user_id)
    if account is None:
        return None
    for field, value in changes.items():
        setattr(account, field, value)
    await db.flush()
    await db.refresh(account)
    return account


async def delete_account(db: AsyncSession, user_id: int) -> bool:
    await db.execute(delete(TradingAccount).where(TradingAccount.user_id == user_id))
    await db.flush()
    return True
