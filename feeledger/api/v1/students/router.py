"""Students router: registration, edits, cascade delete, reconciliation."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from feeledger.api.dependencies import get_ledger
from feeledger.core.exceptions import ServiceError
from feeledger.core.schemas import (
    RecalculationSummary,
    ReconciliationResult,
    Student,
    StudentCreate,
    StudentUpdate,
)
from feeledger.core.services import FeeLedgerService

router = APIRouter(prefix="/api/v1/students", tags=["students"])


@router.post("", response_model=Student, status_code=status.HTTP_201_CREATED)
async def create_student(
    payload: StudentCreate,
    ledger: FeeLedgerService = Depends(get_ledger),
) -> Student:
    try:
        return await ledger.add_student(payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[Student])
async def list_students(ledger: FeeLedgerService = Depends(get_ledger)) -> List[Student]:
    try:
        return await ledger.list_students()
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/reconcile-all", response_model=RecalculationSummary)
async def reconcile_all_students(ledger: FeeLedgerService = Depends(get_ledger)) -> RecalculationSummary:
    try:
        return await ledger.reconcile_all()
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{student_id}", response_model=Student)
async def get_student(
    student_id: str,
    ledger: FeeLedgerService = Depends(get_ledger),
) -> Student:
    try:
        return await ledger.get_student(student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{student_id}", response_model=Student)
async def update_student(
    student_id: str,
    payload: StudentUpdate,
    ledger: FeeLedgerService = Depends(get_ledger),
) -> Student:
    try:
        return await ledger.update_student(student_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_student(
    student_id: str,
    ledger: FeeLedgerService = Depends(get_ledger),
) -> None:
    try:
        await ledger.delete_student(student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{student_id}/reconcile", response_model=ReconciliationResult)
async def reconcile_student(
    student_id: str,
    ledger: FeeLedgerService = Depends(get_ledger),
) -> ReconciliationResult:
    try:
        return await ledger.reconcile(student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
