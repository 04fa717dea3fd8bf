from __future__ import annotations
import logging
from typing import List, Optional, Union
from sqlalchemy import select, delete, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from copytrade.models.copy_subscription import CopySubscription, CopyMode

logger = logging.getLogger(__name__)


def normalize_wallet(address: str) -> str:
    return address.strip().lower()


def _insert_for(db: AsyncSession):
    if db.bind.dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


async def subscribe(
    db: AsyncSession,
    user_id: int,
    source_wallet: str,
    mode: Union[CopyMode, str],
) -> bool:
    """Subscribe a user to a source wallet, or change the mode of an existing subscription."""
    mode = CopyMode(mode)
    wallet = normalize_wallet(source_wallet)
    stmt = _insert_for(db)(CopySubscription).values(
        user_id=user_id, source_wallet=wallet, mode=mode,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "source_wallet"],
        set_={"mode": stmt.excluded.mode, "updated_at": func.now()},
    )
    await db.execute(stmt)
    await db.flush()
    logger.info(f"User {user_id} subscribed to {wallet} ({mode.value})")
    return True


async def unsubscribe(db: AsyncSession, user_id: int, source_wallet: str) -> bool:
    """Remove a subscription. Removing one that does not exist still succeeds."""
    await db.execute(
        delete(CopySubscription).where(
            CopySubscription.user_id == user_id,
            CopySubscription.source_wallet == normalize_wallet(source_wallet),
        )
    )
    await db.flush()
    return True


async def list_subscriptions(db: AsyncSession, user_id: int) -> List[CopySubscription]:
    result = await db.execute(
        select(CopySubscription)
        .where(CopySubscription.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_subscribers_for_wallet(
    db: AsyncSession,
    source_wallet: str,
    mode: Optional[CopyMode] = None,
) -> List[CopySubscription]:
    query = select(CopySubscription).where(
        CopySubscription.source_wallet == normalize_wallet(source_wallet)
    )
    if mode is not None:
        query = query.where(CopySubscription.mode == mode)
    result = await db.execute(query.execution_options(populate_existing=True))
    return list(result.scalars().all())
