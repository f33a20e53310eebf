"""Expense records and the three-way store outcome."""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Any, Generic, TypeVar


STATUS_NAMES = ("Draft", "Submitted", "Approved", "Rejected")

T = TypeVar("T")


@dataclass
class Expense:
    """A single expense claim with its category, status and review data."""
    expense_id: int
    user_id: int
    user_name: str
    email: str
    category_id: int
    category_name: str
    status_id: int
    status_name: str
    amount_minor: int
    amount: float
    currency: str = "GBP"
    expense_date: date | None = None
    description: str | None = None
    receipt_file: str | None = None
    submitted_at: datetime | None = None
    reviewed_by: int | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ExpenseCategory:
    category_id: int
    category_name: str
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ExpenseStatus:
    status_id: int
    status_name: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CreateExpenseRequest:
    """Input for creating an expense; submitted straight away unless submit_now is False."""
    user_id: int
    category_id: int
    amount: float
    expense_date: date
    description: str | None = None
    submit_now: bool = True


@dataclass
class StoreResult(Generic[T]):
    """
    Outcome of a store operation.

    Three states are representable: ok (value, no error), degraded (a
    fallback value together with a diagnostic note) and failed (error only).
    """
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T) -> "StoreResult[T]":
        return cls(value=value)

    @classmethod
    def degraded(cls, value: T, note: str) -> "StoreResult[T]":
        return cls(value=value, error=note)

    @classmethod
    def failure(cls, error: str) -> "StoreResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_degraded(self) -> bool:
        return self.error is not None and self.value is not None

    @property
    def failed(self) -> bool:
        return self.error is not None and self.value is None
