"""Worker process for scheduled budget jobs.

Runs an asyncio loop that opens new budget periods (annual and monthly
rollover) once per configured interval.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date

from benefits.config import get_settings
from benefits.db import session_scope
from benefits.services.ledger import rollover_periods

logger = logging.getLogger(__name__)


async def run_once(today: date | None = None) -> None:
    """Run one rollover pass in its own session."""
    today = today or date.today()
    try:
        async with session_scope() as session:
            result = await rollover_periods(session, today)
        logger.info("Rollover run complete for %s: opened=%d skipped=%d", today, result.opened, result.skipped)
    except Exception:
        logger.exception("Rollover run failed for %s", today)


async def run_rollover_loop() -> None:
    """Main worker loop."""
    interval = get_settings().rollover_interval_seconds
    logger.info("Budget worker started, interval=%ds", interval)
    while True:
        await run_once()
        await asyncio.sleep(interval)


def main() -> None:
    """Entry point for the worker process."""
    logging.basicConfig(level=get_settings().log_level.upper(), format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(run_rollover_loop())


if __name__ == "__main__":
    main()
