"""
Persistence contracts for the ledger.

Both stores are plain document CRUD: no call touches more than one record type and
none of them triggers reconciliation. Callers own cross-entity consistency.
Implementations raise NotFoundError for unknown ids and StoreUnavailableError for
any I/O failure or timeout.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List
from uuid import UUID

from feeledger.core.schemas import Payment, Student


class PaymentStore(ABC):
    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> Payment:
        """Persist a new payment document; the store assigns its id."""

    @abstractmethod
    async def get(self, payment_id: UUID) -> Payment:
        ...

    @abstractmethod
    async def list_by_student(self, student_id: str) -> List[Payment]:
        ...

    @abstractmethod
    async def list_all(self) -> List[Payment]:
        ...

    @abstractmethod
    async def update(self, payment_id: UUID, patch: Dict[str, Any]) -> Payment:
        """Apply a partial update and return the stored result."""

    @abstractmethod
    async def delete(self, payment_id: UUID) -> None:
        ...


class StudentStore(ABC):
    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> Student:
        ...

    @abstractmethod
    async def get(self, student_id: str) -> Student:
        """Look up a student by business key."""

    @abstractmethod
    async def list_all(self) -> List[Student]:
        ...

    @abstractmethod
    async def update(self, student_id: str, patch: Dict[str, Any]) -> Student:
        ...

    @abstractmethod
    async def delete(self, student_id: str) -> None:
        ...
