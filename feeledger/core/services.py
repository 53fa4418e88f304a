"""Fee ledger service: student and payment operations with reconciliation after every write."""

import logging
import secrets
import string
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from feeledger.core.clock import Clock, utc_now
from feeledger.core.enums import FeesStructure, PaymentStatus, StudentFeeStatus
from feeledger.core.exceptions import NotFoundError, StoreUnavailableError, ValidationError
from feeledger.core.locks import KeyedLocks
from feeledger.core.notifier import (
    ChangeNotifier,
    PaymentAdded,
    PaymentDeleted,
    PaymentRecorded,
    PaymentUpdated,
    StudentUpdated,
)
from feeledger.core.promoter import StatusPromoter
from feeledger.core.reconciliation import ZERO, ReconciliationEngine
from feeledger.core.schemas import (
    Payment,
    PaymentCreate,
    PaymentMutationResult,
    PaymentUpdate,
    RecalculationSummary,
    ReconciliationResult,
    Statistics,
    Student,
    StudentCreate,
    StudentUpdate,
    SweepSummary,
)
from feeledger.core.statistics import StatisticsAggregator
from feeledger.stores.base import PaymentStore, StudentStore

logger = logging.getLogger(__name__)

UNRECONCILED_WARNING = "Payment saved, but the student balance is not yet reconciled. Retry reconcile."

_DETAIL_FIELDS = ("name", "student_class")


def _to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def default_fees_structure(fees_due: Decimal) -> FeesStructure:
    if fees_due >= 1500:
        return FeesStructure.ANNUAL
    if fees_due >= 500:
        return FeesStructure.QUARTERLY
    if fees_due > 0:
        return FeesStructure.MONTHLY
    return FeesStructure.NOT_SET


def generate_student_id() -> str:
    return f"STD{secrets.randbelow(10000):04d}"


def generate_receipt_id(now: datetime) -> str:
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(2))
    return f"RCT-{int(now.timestamp() * 1000)}-{suffix}"


def remaining_balance(student: Student, replacing: Decimal = ZERO) -> Decimal:
    """
    What a single instalment may claim: total_fees minus what has been paid.
    When editing, `replacing` is the edited payment's current amount and is added back.
    """
    return max(ZERO, student.total_fees - student.fees_paid + replacing)


class FeeLedgerService:
    """
    Operations the UI layer calls. Every payment mutation for a student runs under
    that student's lock: validate, write the payment, publish the payment event,
    then reconcile (which publishes StudentUpdated when the aggregate moved).
    """

    def __init__(
        self,
        payments: PaymentStore,
        students: StudentStore,
        notifier: Optional[ChangeNotifier] = None,
        locks: Optional[KeyedLocks] = None,
        clock: Clock = utc_now,
        grace: Optional[timedelta] = None,
    ) -> None:
        self.payments = payments
        self.students = students
        self.notifier = notifier or ChangeNotifier()
        self.locks = locks or KeyedLocks()
        self.clock = clock
        self.promoter = StatusPromoter(payments, clock=clock, grace=grace)
        self.engine = ReconciliationEngine(payments, students, self.promoter, self.notifier, self.locks)
        self.statistics = StatisticsAggregator(payments, students, self.promoter)

    # --- Students ---
    async def add_student(self, payload: StudentCreate) -> Student:
        student_id = (payload.student_id or "").strip()
        if student_id:
            if await self._student_exists(student_id):
                raise ValidationError(f"Student ID {student_id} already exists")
        else:
            student_id = await self._unused_student_id()

        total_fees = _to_decimal(payload.total_fees)
        now = self.clock()
        student = await self.students.create(
            {
                "student_id": student_id,
                "name": payload.name.strip(),
                "student_class": payload.student_class,
                "contact": payload.contact,
                "email": payload.email,
                "address": payload.address,
                "admission_date": payload.admission_date,
                "fees_structure": payload.fees_structure or default_fees_structure(total_fees),
                "total_fees": total_fees,
                "fees_paid": ZERO,
                "fees_due": total_fees,
                "status": StudentFeeStatus.NOT_STARTED,
                "created_at": now,
                "updated_at": now,
            }
        )
        logger.info("Registered student %s with total fees %s", student_id, total_fees)
        await self.notifier.publish(StudentUpdated(student=student))
        return student

    async def get_student(self, student_id: str) -> Student:
        return await self.students.get(student_id)

    async def list_students(self) -> List[Student]:
        return await self.students.list_all()

    async def update_student(self, student_id: str, payload: StudentUpdate) -> Student:
        """
        Edit descriptive fields or total_fees. The aggregate is re-derived afterwards;
        fees_paid, fees_due and status cannot be patched directly.
        """
        patch = payload.model_dump(exclude_unset=True)
        for required in ("name", "total_fees"):
            if required in patch and patch[required] is None:
                raise ValidationError(f"{required} cannot be empty")
        if "name" in patch:
            patch["name"] = patch["name"].strip()

        async with self.locks.hold(student_id):
            current = await self.students.get(student_id)
            if not patch:
                return current
            patch["updated_at"] = self.clock()
            updated = await self.students.update(student_id, patch)
            if any(getattr(current, f) != getattr(updated, f) for f in _DETAIL_FIELDS):
                await self._sync_student_details(updated)
            result = await self.engine.reconcile_unlocked(student_id)
            if not result.changed:
                await self.notifier.publish(StudentUpdated(student=result.student))
            return result.student

    async def delete_student(self, student_id: str) -> None:
        """Delete a student and, first, all of its payments. Stops at the first failed delete."""
        async with self.locks.hold(student_id):
            await self.students.get(student_id)
            for payment in await self.payments.list_by_student(student_id):
                await self.payments.delete(payment.id)
                await self.notifier.publish(PaymentDeleted(payment=payment))
            await self.students.delete(student_id)
        logger.info("Deleted student %s", student_id)

    # --- Payments ---
    async def add_payment(self, payload: PaymentCreate) -> PaymentMutationResult:
        amount = _to_decimal(payload.amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")

        async with self.locks.hold(payload.student_id):
            student = await self.students.get(payload.student_id)
            remaining = remaining_balance(student)
            if amount > remaining:
                raise ValidationError(f"Payment amount {amount} exceeds remaining balance of {remaining}")

            now = self.clock()
            payment = await self.payments.create(
                {
                    "student_id": student.student_id,
                    "student_name": student.name,
                    "student_class": student.student_class,
                    "amount": amount,
                    "status": PaymentStatus.pending,
                    "due_date": payload.due_date,
                    "notes": payload.notes,
                    "created_at": now,
                    "updated_at": now,
                }
            )
            await self.notifier.publish(PaymentAdded(payment=payment))
            return await self._reconcile_after_write(payment)

    async def record_payment(
        self,
        payment_id: UUID,
        method: str,
        paid_date: Optional[datetime] = None,
    ) -> PaymentMutationResult:
        """Mark a pending or overdue payment as paid and issue its receipt id."""
        method = (method or "").strip()
        if not method:
            raise ValidationError("Payment method is required")

        student_id = (await self.payments.get(payment_id)).student_id
        async with self.locks.hold(student_id):
            payment = await self.payments.get(payment_id)
            if payment.status == PaymentStatus.paid:
                raise ValidationError("Payment has already been recorded as paid")
            now = self.clock()
            payment = await self.payments.update(
                payment_id,
                {
                    "status": PaymentStatus.paid,
                    "paid_date": paid_date or now,
                    "method": method,
                    "receipt_id": generate_receipt_id(now),
                    "updated_at": now,
                },
            )
            await self.notifier.publish(PaymentRecorded(payment=payment))
            return await self._reconcile_after_write(payment)

    async def update_payment(self, payment_id: UUID, payload: PaymentUpdate) -> PaymentMutationResult:
        changes = payload.model_dump(exclude_unset=True)
        student_id = (await self.payments.get(payment_id)).student_id

        async with self.locks.hold(student_id):
            payment = await self.payments.get(payment_id)
            patch = {}

            if "amount" in changes:
                amount = changes["amount"]
                if amount is None or _to_decimal(amount) <= 0:
                    raise ValidationError("Payment amount must be greater than zero")
                amount = _to_decimal(amount)
                student = await self.students.get(student_id)
                remaining = remaining_balance(student, replacing=payment.amount)
                if amount > remaining:
                    raise ValidationError(f"Payment amount {amount} exceeds remaining balance of {remaining}")
                if amount != payment.amount:
                    patch["amount"] = amount

            if "due_date" in changes:
                if changes["due_date"] is None:
                    raise ValidationError("Due date is required")
                patch["due_date"] = changes["due_date"]

            if "notes" in changes:
                patch["notes"] = changes["notes"]

            status = changes.get("status")
            if status == PaymentStatus.paid and payment.status != PaymentStatus.paid:
                raise ValidationError("Use record payment to mark a payment as paid")
            if status == PaymentStatus.overdue and payment.status != PaymentStatus.overdue:
                raise ValidationError("Overdue status is assigned automatically")
            if status == PaymentStatus.pending and payment.status != PaymentStatus.pending:
                patch.update(status=PaymentStatus.pending, paid_date=None, method=None, receipt_id=None)

            effective_status = patch.get("status", payment.status)
            if "method" in changes or "paid_date" in changes:
                if effective_status != PaymentStatus.paid:
                    raise ValidationError("Method and paid date can only be set on a paid payment")
                if "method" in changes:
                    method = (changes["method"] or "").strip()
                    if not method:
                        raise ValidationError("Payment method is required")
                    patch["method"] = method
                if "paid_date" in changes:
                    if changes["paid_date"] is None:
                        raise ValidationError("Paid date is required")
                    patch["paid_date"] = changes["paid_date"]

            if not patch:
                return await self._reconcile_after_write(payment)

            patch["updated_at"] = self.clock()
            payment = await self.payments.update(payment_id, patch)
            await self.notifier.publish(PaymentUpdated(payment=payment))
            return await self._reconcile_after_write(payment)

    async def delete_payment(self, payment_id: UUID) -> PaymentMutationResult:
        student_id = (await self.payments.get(payment_id)).student_id
        async with self.locks.hold(student_id):
            payment = await self.payments.get(payment_id)
            await self.payments.delete(payment_id)
            await self.notifier.publish(PaymentDeleted(payment=payment))
            return await self._reconcile_after_write(payment)

    async def get_payment(self, payment_id: UUID) -> Payment:
        payment = await self.payments.get(payment_id)
        return (await self.promoter.normalize([payment]))[0]

    async def list_payments(self, student_id: Optional[str] = None) -> List[Payment]:
        if student_id is None:
            payments = await self.payments.list_all()
        else:
            await self.students.get(student_id)
            payments = await self.payments.list_by_student(student_id)
        return await self.promoter.normalize(payments)

    async def sweep_overdue(self) -> SweepSummary:
        promoted = await self.promoter.sweep()
        for payment in promoted:
            await self.notifier.publish(PaymentUpdated(payment=payment))
        return SweepSummary(promoted=len(promoted), payment_ids=[p.id for p in promoted])

    # --- Reconciliation & statistics ---
    async def reconcile(self, student_id: str) -> ReconciliationResult:
        return await self.engine.reconcile(student_id)

    async def reconcile_all(self) -> RecalculationSummary:
        return await self.engine.reconcile_all()

    async def compute_statistics(self) -> Statistics:
        return await self.statistics.compute()

    # --- Helpers ---
    async def _reconcile_after_write(self, payment: Payment) -> PaymentMutationResult:
        # The payment write already happened and cannot be undone; a store failure here
        # is reported back so the caller can retry reconcile.
        try:
            result = await self.engine.reconcile_unlocked(payment.student_id)
        except StoreUnavailableError:
            logger.warning(
                "Payment %s saved but student %s was not reconciled", payment.id, payment.student_id
            )
            return PaymentMutationResult(payment=payment, reconciled=False, warning=UNRECONCILED_WARNING)
        return PaymentMutationResult(payment=payment, student=result.student, reconciled=True)

    async def _sync_student_details(self, student: Student) -> int:
        """Copy the student's name and class onto its payments."""
        synced = 0
        for payment in await self.payments.list_by_student(student.student_id):
            if payment.student_name == student.name and payment.student_class == student.student_class:
                continue
            await self.payments.update(
                payment.id, {"student_name": student.name, "student_class": student.student_class}
            )
            synced += 1
        if synced:
            logger.info("Refreshed student details on %d payment(s) of %s", synced, student.student_id)
        return synced

    async def _student_exists(self, student_id: str) -> bool:
        try:
            await self.students.get(student_id)
        except NotFoundError:
            return False
        return True

    async def _unused_student_id(self, max_attempts: int = 5) -> str:
        for _ in range(max_attempts):
            candidate = generate_student_id()
            if not await self._student_exists(candidate):
                return candidate
        raise ValidationError("Could not generate a unique student ID; please supply one")
