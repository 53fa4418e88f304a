"""
Pending -> overdue promotion.

A pending payment becomes overdue once its due date has passed and it is older than
the grace window. The grace window keeps a payment created "now" with a due date in
the past (timezone skew, back-dated entry) from being flagged in the same instant.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from feeledger.core.clock import Clock, utc_now
from feeledger.core.config import settings
from feeledger.core.enums import PaymentStatus
from feeledger.core.exceptions import StoreUnavailableError
from feeledger.core.schemas import Payment
from feeledger.stores.base import PaymentStore

logger = logging.getLogger(__name__)


def default_grace() -> timedelta:
    return timedelta(seconds=settings.overdue_grace_seconds)


def is_overdue(payment: Payment, now: datetime, grace: timedelta) -> bool:
    """Due date strictly before today (UTC) and created more than `grace` ago."""
    if payment.status != PaymentStatus.pending:
        return False
    if payment.due_date >= now.date():
        return False
    return now - payment.created_at > grace


class StatusPromoter:
    def __init__(
        self,
        payments: PaymentStore,
        clock: Clock = utc_now,
        grace: Optional[timedelta] = None,
    ) -> None:
        self.payments = payments
        self.clock = clock
        self.grace = default_grace() if grace is None else grace

    async def normalize(self, payments: List[Payment]) -> List[Payment]:
        """
        Read-time pass: return `payments` with due promotions applied.

        Promotions are written back best-effort. If the write fails the promoted view is
        still returned; the next read derives the same promotion again.
        """
        now = self.clock()
        normalized = []
        for payment in payments:
            if is_overdue(payment, now, self.grace):
                payment = await self._persist_best_effort(payment, now)
            normalized.append(payment)
        return normalized

    async def sweep(self) -> List[Payment]:
        """Promote every due pending payment in the store. Store failures propagate."""
        now = self.clock()
        promoted = []
        for payment in await self.payments.list_all():
            if is_overdue(payment, now, self.grace):
                promoted.append(
                    await self.payments.update(
                        payment.id, {"status": PaymentStatus.overdue, "updated_at": now}
                    )
                )
        if promoted:
            logger.info("Overdue sweep promoted %d payment(s)", len(promoted))
        return promoted

    async def _persist_best_effort(self, payment: Payment, now: datetime) -> Payment:
        try:
            return await self.payments.update(
                payment.id, {"status": PaymentStatus.overdue, "updated_at": now}
            )
        except StoreUnavailableError:
            logger.warning("Could not persist overdue status for payment %s", payment.id)
            return payment.model_copy(update={"status": PaymentStatus.overdue})
