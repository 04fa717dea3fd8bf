from copytrade.models.copy_subscription import CopySubscription, CopyMode
from copytrade.models.trading_account import TradingAccount
from copytrade.models.copy_trade import CopyTrade, CopyTradeStatus, TradeSide, ReasonCode
from copytrade.models.ignored_market import IgnoredMarket

__all__ = [
    "CopySubscription",
    "CopyMode",
    "TradingAccount",
    "CopyTrade",
    "CopyTradeStatus",
    "TradeSide",
    "ReasonCode",
    "IgnoredMarket",
]
