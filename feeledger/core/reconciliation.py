"""
Student balance reconciliation.

The student row caches fees_paid / fees_due / status; payments are the source of
truth. reconcile() recomputes the cache from the payment log and writes only when
something differs, so it is safe to call any number of times. Since the store has no
cross-entity transaction, re-running reconcile after a failed write is the only way
the two sides converge.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List

from feeledger.core.enums import PaymentStatus, StudentFeeStatus
from feeledger.core.exceptions import NotFoundError, StoreUnavailableError
from feeledger.core.locks import KeyedLocks
from feeledger.core.notifier import ChangeNotifier, StudentUpdated
from feeledger.core.promoter import StatusPromoter
from feeledger.core.schemas import Payment, RecalculationSummary, ReconciliationResult
from feeledger.stores.base import PaymentStore, StudentStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def sum_by_status(payments: Iterable[Payment]) -> Dict[PaymentStatus, Decimal]:
    totals = {status: ZERO for status in PaymentStatus}
    for payment in payments:
        totals[payment.status] += payment.amount
    return totals


def derive_student_status(fees_paid: Decimal, total_fees: Decimal) -> StudentFeeStatus:
    if fees_paid == 0:
        return StudentFeeStatus.NOT_STARTED
    if total_fees > 0 and fees_paid >= total_fees:
        return StudentFeeStatus.PAID
    return StudentFeeStatus.PENDING


def fees_due_for(total_fees: Decimal, fees_paid: Decimal) -> Decimal:
    return max(ZERO, total_fees - fees_paid)


class ReconciliationEngine:
    def __init__(
        self,
        payments: PaymentStore,
        students: StudentStore,
        promoter: StatusPromoter,
        notifier: ChangeNotifier,
        locks: KeyedLocks,
    ) -> None:
        self.payments = payments
        self.students = students
        self.promoter = promoter
        self.notifier = notifier
        self.locks = locks

    async def reconcile(self, student_id: str) -> ReconciliationResult:
        async with self.locks.hold(student_id):
            return await self.reconcile_unlocked(student_id)

    async def reconcile_unlocked(self, student_id: str) -> ReconciliationResult:
        """Reconcile without taking the student's lock. The caller must already hold it."""
        # A failed payment read raises before anything is written.
        payments: List[Payment] = await self.promoter.normalize(
            await self.payments.list_by_student(student_id)
        )
        student = await self.students.get(student_id)

        totals = sum_by_status(payments)
        fees_paid = totals[PaymentStatus.paid]
        fees_due = fees_due_for(student.total_fees, fees_paid)
        status = derive_student_status(fees_paid, student.total_fees)

        patch = {}
        if student.fees_paid != fees_paid:
            patch["fees_paid"] = fees_paid
        if student.fees_due != fees_due:
            patch["fees_due"] = fees_due
        if student.status != status:
            patch["status"] = status

        changed = bool(patch)
        if changed:
            student = await self.students.update(student_id, patch)
            logger.info(
                "Reconciled student %s: paid=%s due=%s status=%s",
                student_id, fees_paid, fees_due, status.value,
            )
            await self.notifier.publish(StudentUpdated(student=student))

        return ReconciliationResult(
            student=student,
            changed=changed,
            total_paid=fees_paid,
            total_pending=totals[PaymentStatus.pending],
            total_overdue=totals[PaymentStatus.overdue],
        )

    async def reconcile_all(self) -> RecalculationSummary:
        """Reconcile every student. One student's failure does not stop the others."""
        students = await self.students.list_all()
        updated = 0
        failed = []
        for student in students:
            try:
                result = await self.reconcile(student.student_id)
            except (StoreUnavailableError, NotFoundError) as e:
                logger.warning("Reconciliation failed for student %s: %s", student.student_id, e.message)
                failed.append(student.student_id)
                continue
            if result.changed:
                updated += 1
        logger.info("Recalculated fees for %d of %d student(s)", updated, len(students))
        return RecalculationSummary(
            students_updated=updated,
            total_students=len(students),
            failed=failed,
        )
