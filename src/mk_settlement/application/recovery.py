"""Background settlement recovery loop, started from the app lifespan."""

import asyncio
import logging

from src.mk_settlement.application.service import SettlementCoordinator

logger = logging.getLogger(__name__)


async def run_settlement_sweeper(
    coordinator: SettlementCoordinator, interval_seconds: float
) -> None:
    """Run `recover_pending` now and then every `interval_seconds` until cancelled."""
    while True:
        try:
            await coordinator.recover_pending()
        except Exception:
            logger.exception(
                "Settlement recovery sweep crashed; next attempt in %.0fs", interval_seconds
            )
        await asyncio.sleep(interval_seconds)
