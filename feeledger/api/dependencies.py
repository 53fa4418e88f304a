from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.services import FeeLedgerService
from feeledger.db.session import get_db
from feeledger.stores.sql import SqlPaymentStore, SqlStudentStore


async def get_ledger(request: Request, db: AsyncSession = Depends(get_db)) -> FeeLedgerService:
    """Per-request service over the request's session; notifier, locks and clock are process-wide."""
    state = request.app.state
    return FeeLedgerService(
        SqlPaymentStore(db),
        SqlStudentStore(db),
        notifier=state.notifier,
        locks=state.locks,
        clock=state.clock,
    )
