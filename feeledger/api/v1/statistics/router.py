from fastapi import APIRouter, Depends, HTTPException

from feeledger.api.dependencies import get_ledger
from feeledger.core.exceptions import ServiceError
from feeledger.core.schemas import Statistics
from feeledger.core.services import FeeLedgerService

router = APIRouter(prefix="/api/v1/statistics", tags=["statistics"])


@router.get("", response_model=Statistics)
async def get_statistics(ledger: FeeLedgerService = Depends(get_ledger)) -> Statistics:
    """Dashboard totals from payments and from student balances, with the drift between them."""
    try:
        return await ledger.compute_statistics()
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
