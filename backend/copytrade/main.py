from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
from fastapi import FastAPI
from copytrade.config import get_settings
from copytrade.database import init_db

settings = get_settings()

worker_tasks: list[asyncio.Task] = []


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await init_db()

    from copytrade.services.copy_trade_executor import CopyTradeCoordinator
    from copytrade.services.order_execution import HttpOrderExecutor
    from copytrade.workers.copy_trade_worker import run_copy_trade_worker

    queue: asyncio.Queue = asyncio.Queue(maxsize=settings.copy_trade_worker_queue_size)
    app.state.copy_trade_queue = queue
    # per-user limit locks live in this process; run a single worker
    coordinator = CopyTradeCoordinator(executor=HttpOrderExecutor())
    worker_tasks.append(asyncio.create_task(run_copy_trade_worker(queue, coordinator)))

    yield

    # Shutdown
    for task in worker_tasks:
        task.cancel()
    await asyncio.gather(*worker_tasks, return_exceptions=True)
    worker_tasks.clear()


app = FastAPI(
    title="Copy Trade Engine",
    description="Mirrors source wallet trades into sized orders for subscribers",
    version="1.0.0",
    lifespan=lifespan,
)

from copytrade.api import copy_trade

app.include_router(copy_trade.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
