from __future__ import annotations
from typing import List
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from copytrade.models.ignored_market import IgnoredMarket


async def list_ignored_markets(db: AsyncSession, user_id: int) -> List[str]:
    result = await db.execute(
        select(IgnoredMarket.pattern)
        .where(IgnoredMarket.user_id == user_id)
        .order_by(IgnoredMarket.id.asc())
    )
    return list(result.scalars().all())


async def add_ignored_market(db: AsyncSession, user_id: int, pattern: str) -> bool:
    pattern = pattern.strip()
    if not pattern:
        # an empty pattern would match every title
        raise ValueError("Ignored market pattern cannot be empty")
    existing = await db.execute(
        select(IgnoredMarket).where(IgnoredMarket.user_id == user_id, IgnoredMarket.pattern == pattern)
    )
    if existing.scalar_one_or_none() is None:
        db.add(IgnoredMarket(user_id=user_id, pattern=pattern))
        await db.flush()
    return True


async def remove_ignored_market(db: AsyncSession, user_id: int, pattern: str) -> bool:
    await db.execute(
        delete(IgnoredMarket).where(
            IgnoredMarket.user_id == user_id, IgnoredMarket.pattern == pattern.strip()
        )
    )
    await db.flush()
    return True


async def should_ignore_market(db: AsyncSession, user_id: int, market_title: str) -> bool:
    """True if any of the user's patterns appears in the title, ignoring case."""
    patterns = await list_ignored_markets(db, user_id)
    if not patterns:
        return False
    title = market_title.lower()
    return any(p.strip() and p.lower() in title for p in patterns)
