"""
Recompute every student's fees_paid / fees_due / status from the payment log.

Idempotent: students already in agreement with their payments are not written.
Use after an outage that left payment writes unreconciled.
Usage: python -m feeledger.scripts.reconcile_all
"""

import asyncio
import logging
import sys

from feeledger.core.config import configure_logging
from feeledger.core.services import FeeLedgerService
from feeledger.db.session import AsyncSessionLocal
from feeledger.stores.sql import SqlPaymentStore, SqlStudentStore

logger = logging.getLogger(__name__)


async def reconcile_all() -> int:
    async with AsyncSessionLocal() as session:
        ledger = FeeLedgerService(SqlPaymentStore(session), SqlStudentStore(session))
        summary = await ledger.reconcile_all()
        stats = await ledger.compute_statistics()
    logger.info(
        "Updated %d of %d student(s); %d failed",
        summary.students_updated, summary.total_students, len(summary.failed),
    )
    if summary.failed:
        logger.warning("Students still unreconciled: %s", ", ".join(summary.failed))
    logger.info("Remaining drift after recalculation: %s", stats.consistency_check.difference)
    return 1 if summary.failed else 0


if __name__ == "__main__":
    configure_logging()
    sys.exit(asyncio.run(reconcile_all()))
