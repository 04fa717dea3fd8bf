from __future__ import annotations
import asyncio
import logging
from copytrade.config import get_settings
from copytrade.schemas.copy_trade import SourceTradeEvent
from copytrade.services.copy_trade_executor import CopyTradeCoordinator, CopyTradeProcessingError

settings = get_settings()
logger = logging.getLogger(__name__)


async def run_copy_trade_worker(
    queue: "asyncio.Queue[SourceTradeEvent]",
    coordinator: CopyTradeCoordinator,
):
    """Background worker that drains source trade events and copies them to subscribers."""
    logger.info("Copy trade worker started")

    if not settings.copy_trade_enabled:
        logger.info("Copy trading is globally disabled, worker will drain events but not trade")

    while True:
        try:
            event = await queue.get()
        except asyncio.CancelledError:
            logger.info("Copy trade worker cancelled")
            break

        try:
            if not settings.copy_trade_enabled:
                logger.debug(f"Dropping source trade {event.source_trade_hash}: copy trading disabled")
                continue

            stats = await coordinator.process_source_trade(event)
            logger.info(
                f"Source trade {event.source_trade_hash} from {event.source_wallet}: "
                f"executed={stats.executed} failed={stats.failed} skipped={stats.skipped} "
                f"duplicates={stats.duplicates} recommended={stats.recommended} "
                f"size=${stats.total_copy_size:.2f}"
            )
        except asyncio.CancelledError:
            logger.info("Copy trade worker cancelled")
            break
        except CopyTradeProcessingError as e:
            logger.error(f"Copy trade worker: {e}")
        except Exception as e:
            logger.error(f"Copy trade worker error on {event.source_trade_hash}: {e}")
        finally:
            queue.task_done()
