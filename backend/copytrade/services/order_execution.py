from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Protocol
import httpx
from copytrade.config import get_settings
from copytrade.models.copy_trade import TradeSide

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderRequest:
    wallet_address: str
    encrypted_credentials: str
    side: TradeSide
    size: float
    price: float


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    tx_hash: Optional[str] = None


class OrderExecutionError(Exception):
    """The venue rejected the order or could not be reached."""


class OrderExecutor(Protocol):
    async def place_order(self, request: OrderRequest) -> OrderResult:
        ...


class HttpOrderExecutor:
    """Submits orders to the execution service over HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.execution_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.execution_api_key
        self.timeout = timeout or settings.execution_timeout_seconds
        self.transport = transport

    async def place_order(self, request: OrderRequest) -> OrderResult:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(
                    f"{self.base_url}/orders",
                    headers=headers,
                    json={
                        "wallet_address": request.wallet_address,
                        "encrypted_credentials": request.encrypted_credentials,
                        "side": request.side.value,
                        "size": request.size,
                        "price": request.price,
                    },
                )
        except httpx.HTTPError as e:
            raise OrderExecutionError(f"Execution service unreachable: {e}") from e

        if resp.status_code >= 300:
            logger.error(f"Execution service error {resp.status_code}: {resp.text}")
            raise OrderExecutionError(f"Order rejected ({resp.status_code}): {resp.text[:200]}")

        data = resp.json()
        order_id = data.get("order_id")
        if not order_id:
            raise OrderExecutionError(data.get("error") or "Execution service returned no order id")
        return OrderResult(order_id=str(order_id), tx_hash=data.get("tx_hash"))
