"""Payments router: add, record as paid, edit, delete, list, overdue sweep."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from feeledger.api.dependencies import get_ledger
from feeledger.core.exceptions import ServiceError
from feeledger.core.schemas import (
    Payment,
    PaymentCreate,
    PaymentMutationResult,
    PaymentUpdate,
    RecordPaymentRequest,
    SweepSummary,
)
from feeledger.core.services import FeeLedgerService

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post("", response_model=PaymentMutationResult, status_code=status.HTTP_201_CREATED)
async def add_payment(
    payload: PaymentCreate,
    ledger: FeeLedgerService = Depends(get_ledger),
) -> PaymentMutationResult:
    try:
        return await ledger.add_payment(payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[Payment])
async def list_payments(
    student_id: Optional[str] = Query(None),
    ledger: FeeLedgerService = Depends(get_ledger),
) -> List[Payment]:
    try:
        return await ledger.list_payments(student_id=student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/sweep-overdue", response_model=SweepSummary)
async def sweep_overdue(ledger: FeeLedgerService = Depends(get_ledger)) -> SweepSummary:
    try:
        return await ledger.sweep_overdue()
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{payment_id}", response_model=Payment)
async def get_payment(
    payment_id: UUID,
    ledger: FeeLedgerService = Depends(get_ledger),
) -> Payment:
    try:
        return await ledger.get_payment(payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{payment_id}/record", response_model=PaymentMutationResult)
async def record_payment(
    payment_id: UUID,
    payload: RecordPaymentRequest,
    ledger: FeeLedgerService = Depends(get_ledger),
) -> PaymentMutationResult:
    try:
        return await ledger.record_payment(payment_id, payload.method, paid_date=payload.paid_date)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{payment_id}", response_model=PaymentMutationResult)
async def update_payment(
    payment_id: UUID,
    payload: PaymentUpdate,
    ledger: FeeLedgerService = Depends(get_ledger),
) -> PaymentMutationResult:
    try:
        return await ledger.update_payment(payment_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{payment_id}", response_model=PaymentMutationResult)
async def delete_payment(
    payment_id: UUID,
    ledger: FeeLedgerService = Depends(get_ledger),
) -> PaymentMutationResult:
    try:
        return await ledger.delete_payment(payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
