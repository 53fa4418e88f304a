"""
Promote every pending payment whose due date has passed (and whose grace window has
elapsed) to overdue.

Safe to run repeatedly, e.g. from cron: already-promoted payments are skipped.
Usage: python -m feeledger.scripts.sweep_overdue
"""

import asyncio
import logging

from feeledger.core.config import configure_logging
from feeledger.core.services import FeeLedgerService
from feeledger.db.session import AsyncSessionLocal
from feeledger.stores.sql import SqlPaymentStore, SqlStudentStore

logger = logging.getLogger(__name__)


async def sweep_overdue() -> int:
    async with AsyncSessionLocal() as session:
        ledger = FeeLedgerService(SqlPaymentStore(session), SqlStudentStore(session))
        summary = await ledger.sweep_overdue()
    logger.info("Promoted %d payment(s) to overdue", summary.promoted)
    return summary.promoted


if __name__ == "__main__":
    configure_logging()
    asyncio.run(sweep_overdue())
