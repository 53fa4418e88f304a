"""Typed change events and the publish/subscribe hub that delivers them."""

import inspect
import logging
from collections import defaultdict
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from feeledger.core.clock import utc_now
from feeledger.core.enums import FeeEventKind
from feeledger.core.schemas import Payment, Student

logger = logging.getLogger(__name__)


class FeeEvent(BaseModel):
    kind: FeeEventKind
    occurred_at: datetime = Field(default_factory=utc_now)


class PaymentAdded(FeeEvent):
    kind: Literal[FeeEventKind.PAYMENT_ADDED] = FeeEventKind.PAYMENT_ADDED
    payment: Payment


class PaymentRecorded(FeeEvent):
    """Payment moved to paid."""

    kind: Literal[FeeEventKind.PAYMENT_RECORDED] = FeeEventKind.PAYMENT_RECORDED
    payment: Payment


class PaymentUpdated(FeeEvent):
    kind: Literal[FeeEventKind.PAYMENT_UPDATED] = FeeEventKind.PAYMENT_UPDATED
    payment: Payment


class PaymentDeleted(FeeEvent):
    kind: Literal[FeeEventKind.PAYMENT_DELETED] = FeeEventKind.PAYMENT_DELETED
    payment: Payment


class StudentUpdated(FeeEvent):
    kind: Literal[FeeEventKind.STUDENT_UPDATED] = FeeEventKind.STUDENT_UPDATED
    student: Student


Handler = Callable[[FeeEvent], Union[None, Awaitable[None]]]


class ChangeNotifier:
    """
    Fire-and-forget, at-most-once delivery. Handlers run in subscription order, kind
    subscribers before catch-all subscribers. A failing handler is logged and skipped;
    it never reaches the publisher or the remaining handlers.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Optional[FeeEventKind], List[Handler]] = defaultdict(list)

    def subscribe(self, kind: Optional[FeeEventKind], handler: Handler) -> Callable[[], None]:
        """Register `handler` for one event kind, or for every kind when `kind` is None."""
        self._handlers[kind].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers.get(kind, []):
                self._handlers[kind].remove(handler)

        return unsubscribe

    async def publish(self, event: FeeEvent) -> None:
        handlers = list(self._handlers.get(event.kind, [])) + list(self._handlers.get(None, []))
        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Subscriber %r failed handling %s", handler, event.kind.value)
