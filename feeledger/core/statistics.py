"""
Fleet-wide fee totals, computed twice: once from the payment log and once from the
cached student aggregates. The two should agree; the difference is reported as the
drift indicator instead of being hidden.
"""

import logging
from decimal import Decimal
from typing import Iterable, List

from feeledger.core.enums import PaymentStatus
from feeledger.core.promoter import StatusPromoter
from feeledger.core.reconciliation import ZERO, sum_by_status
from feeledger.core.schemas import ConsistencyCheck, Payment, Statistics, Student
from feeledger.stores.base import PaymentStore, StudentStore

logger = logging.getLogger(__name__)


def summarize(payments: Iterable[Payment], students: Iterable[Student]) -> Statistics:
    payments = list(payments)
    students = list(students)

    totals = sum_by_status(payments)
    collected = totals[PaymentStatus.paid]
    pending = totals[PaymentStatus.pending]
    overdue = totals[PaymentStatus.overdue]

    student_paid: Decimal = sum((s.fees_paid for s in students), ZERO)
    student_pending: Decimal = sum((s.fees_due for s in students), ZERO)
    student_total_fees: Decimal = sum((s.total_fees for s in students), ZERO)

    payment_total = collected + pending + overdue
    student_total = student_paid + student_pending
    check = ConsistencyCheck(
        payment_total=payment_total,
        student_total=student_total,
        difference=abs(payment_total - student_total),
        paid_difference=abs(collected - student_paid),
    )
    return Statistics(
        total_students=len(students),
        total_students_with_payments=sum(1 for s in students if s.total_fees > 0),
        payment_count=len(payments),
        collected=collected,
        pending=pending,
        overdue=overdue,
        student_paid=student_paid,
        student_pending=student_pending,
        student_total_fees=student_total_fees,
        consistency_check=check,
        is_consistent=check.difference == 0,
    )


class StatisticsAggregator:
    def __init__(self, payments: PaymentStore, students: StudentStore, promoter: StatusPromoter) -> None:
        self.payments = payments
        self.students = students
        self.promoter = promoter

    async def compute(self) -> Statistics:
        payments: List[Payment] = await self.promoter.normalize(await self.payments.list_all())
        students = await self.students.list_all()
        stats = summarize(payments, students)
        check = stats.consistency_check
        if not stats.is_consistent:
            logger.warning(
                "Fee totals diverge: payments=%s students=%s difference=%s paid_difference=%s",
                check.payment_total, check.student_total, check.difference, check.paid_difference,
            )
        return stats
