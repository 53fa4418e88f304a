"""Ledger records and request/response schemas shared by the service, stores and routers."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from feeledger.core.enums import FeesStructure, PaymentStatus, StudentFeeStatus


# --- Student ---
class Student(BaseModel):
    """Student aggregate record. fees_paid, fees_due and status are cached values owned by reconciliation."""

    id: UUID
    student_id: str
    name: str
    student_class: Optional[str] = None
    contact: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    admission_date: Optional[date] = None
    fees_structure: FeesStructure = FeesStructure.NOT_SET
    total_fees: Decimal
    fees_paid: Decimal
    fees_due: Decimal
    status: StudentFeeStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StudentCreate(BaseModel):
    student_id: Optional[str] = Field(None, max_length=50, description="Generated as STDnnnn when omitted")
    name: str = Field(..., min_length=1, max_length=255)
    student_class: Optional[str] = Field(None, max_length=50)
    contact: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = None
    admission_date: Optional[date] = None
    fees_structure: Optional[FeesStructure] = None
    total_fees: Decimal = Field(..., ge=0)


class StudentUpdate(BaseModel):
    """Directly editable student fields. Paid/due/status are never patched from outside."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    student_class: Optional[str] = Field(None, max_length=50)
    contact: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = None
    admission_date: Optional[date] = None
    fees_structure: Optional[FeesStructure] = None
    total_fees: Optional[Decimal] = Field(None, ge=0)

    class Config:
        extra = "forbid"


# --- Payment ---
class Payment(BaseModel):
    id: UUID
    student_id: str
    student_name: Optional[str] = None
    student_class: Optional[str] = None
    amount: Decimal
    status: PaymentStatus
    due_date: date
    paid_date: Optional[datetime] = None
    method: Optional[str] = None
    receipt_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaymentCreate(BaseModel):
    student_id: str = Field(..., min_length=1, max_length=50)
    amount: Decimal
    due_date: date
    notes: Optional[str] = None


class PaymentUpdate(BaseModel):
    amount: Optional[Decimal] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    method: Optional[str] = Field(None, max_length=30)
    paid_date: Optional[datetime] = None
    status: Optional[PaymentStatus] = Field(None, description="Only 'pending' may be set here; use record to mark paid")

    class Config:
        extra = "forbid"


class RecordPaymentRequest(BaseModel):
    method: str = Field(..., min_length=1, max_length=30, description="Cash, UPI, Card, Bank Transfer, Cheque")
    paid_date: Optional[datetime] = None


class PaymentMutationResult(BaseModel):
    """Outcome of a payment write plus the reconciliation that followed it."""

    payment: Payment
    student: Optional[Student] = None
    reconciled: bool
    warning: Optional[str] = None


# --- Reconciliation ---
class ReconciliationResult(BaseModel):
    student: Student
    changed: bool
    total_paid: Decimal
    total_pending: Decimal
    total_overdue: Decimal


class RecalculationSummary(BaseModel):
    students_updated: int
    total_students: int
    failed: List[str] = Field(default_factory=list)


class SweepSummary(BaseModel):
    promoted: int
    payment_ids: List[UUID] = Field(default_factory=list)


# --- Statistics ---
class ConsistencyCheck(BaseModel):
    payment_total: Decimal
    student_total: Decimal
    difference: Decimal
    paid_difference: Decimal


class Statistics(BaseModel):
    total_students: int
    total_students_with_payments: int
    payment_count: int
    collected: Decimal
    pending: Decimal
    overdue: Decimal
    student_paid: Decimal
    student_pending: Decimal
    student_total_fees: Decimal
    consistency_check: ConsistencyCheck
    is_consistent: bool
