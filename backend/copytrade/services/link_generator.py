from __future__ import annotations
from typing import Any, Mapping, Optional
from copytrade.config import get_settings

settings = get_settings()


def generate_link(trade: Any) -> Optional[str]:
    """Market URL for a trade exposing a ``slug``; None when the slug is missing."""
    if isinstance(trade, Mapping):
        slug = trade.get("slug")
    else:
        slug = getattr(trade, "slug", None)
    if not slug:
        return None
    return f"{settings.market_link_base_url}{slug}"
