"""Sample data served while the expense database is unreachable."""

from datetime import datetime, timedelta

from expenses.models import Expense, ExpenseCategory, ExpenseStatus


def fallback_expenses(now: datetime | None = None) -> list[Expense]:
    now = now or datetime.now()
    return [
        Expense(
            expense_id=1,
            user_id=1,
            user_name="Demo User",
            email="demo@example.com",
            category_id=1,
            category_name="Travel",
            status_id=2,
            status_name="Submitted",
            amount_minor=12000,
            amount=120.00,
            currency="GBP",
            expense_date=(now - timedelta(days=5)).date(),
            description="Client meeting travel",
            submitted_at=now - timedelta(days=4),
            created_at=now - timedelta(days=5),
        ),
        Expense(
            expense_id=2,
            user_id=1,
            user_name="Demo User",
            email="demo@example.com",
            category_id=2,
            category_name="Meals",
            status_id=3,
            status_name="Approved",
            amount_minor=6900,
            amount=69.00,
            currency="GBP",
            expense_date=(now - timedelta(days=10)).date(),
            description="Business lunch",
            submitted_at=now - timedelta(days=9),
            reviewed_at=now - timedelta(days=8),
            created_at=now - timedelta(days=10),
        ),
    ]


def fallback_categories() -> list[ExpenseCategory]:
    return [
        ExpenseCategory(1, "Travel"),
        ExpenseCategory(2, "Meals"),
        ExpenseCategory(3, "Supplies"),
        ExpenseCategory(4, "Accommodation"),
    ]


def fallback_statuses() -> list[ExpenseStatus]:
    return [
        ExpenseStatus(1, "Draft"),
        ExpenseStatus(2, "Submitted"),
        ExpenseStatus(3, "Approved"),
        ExpenseStatus(4, "Rejected"),
    ]
