from __future__ import annotations
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./copytrade.db"

    # Copy trade settings
    copy_trade_enabled: bool = False  # global kill switch for the event worker
    copy_trade_history_limit: int = 20
    copy_trade_worker_queue_size: int = 1000
    ledger_timezone: str = ""  # IANA name; empty means the server's local zone

    # 32-byte hex key (or passphrase) for AES-256-GCM
    credentials_encryption_key: str = ""

    # Execution collaborator
    execution_api_url: str = "http://localhost:8080"
    execution_api_key: str = ""
    execution_timeout_seconds: float = 30.0

    market_link_base_url: str = "https://polymarket.com/event/"

    model_config = {"env_file": ".env", "extra": "ignore"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
