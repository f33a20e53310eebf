"""Expense store interface and its SQLite implementation."""

from __future__ import annotations

import logging
import os
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterator

from expenses.fallback import fallback_categories, fallback_expenses, fallback_statuses
from expenses.models import (
    STATUS_NAMES,
    CreateExpenseRequest,
    Expense,
    ExpenseCategory,
    ExpenseStatus,
    StoreResult,
)

logger = logging.getLogger(__name__)


class ExpenseStore(ABC):
    """
    Operations on expenses, categories and statuses.

    Every call returns a StoreResult instead of raising. Reads may come back
    degraded (fallback data plus an error note) when the backing store is
    unreachable; callers must not treat degraded data as live.
    """

    @abstractmethod
    def list_all(self) -> StoreResult[list[Expense]]:
        ...

    @abstractmethod
    def list_by_status(self, status: str) -> StoreResult[list[Expense]]:
        ...

    @abstractmethod
    def list_pending(self) -> StoreResult[list[Expense]]:
        ...

    @abstractmethod
    def get_by_id(self, expense_id: int) -> StoreResult[Expense]:
        ...

    @abstractmethod
    def create(self, request: CreateExpenseRequest) -> StoreResult[Expense]:
        ...

    @abstractmethod
    def update_status(
        self, expense_id: int, status: str, reviewer_id: int | None = None
    ) -> StoreResult[Expense]:
        ...

    @abstractmethod
    def approve(self, expense_id: int, reviewer_id: int) -> StoreResult[Expense]:
        ...

    @abstractmethod
    def list_categories(self) -> StoreResult[list[ExpenseCategory]]:
        ...

    @abstractmethod
    def list_statuses(self) -> StoreResult[list[ExpenseStatus]]:
        ...


_EXPENSE_SELECT = """
    SELECT
        e.expense_id, e.user_id, u.user_name, u.email,
        e.category_id, c.category_name, e.status_id, s.status_name,
        e.amount_minor, e.currency, e.expense_date, e.description,
        e.receipt_file, e.submitted_at, e.reviewed_by, e.reviewed_at,
        e.created_at
    FROM expenses e
    JOIN users u ON u.user_id = e.user_id
    JOIN categories c ON c.category_id = e.category_id
    JOIN statuses s ON s.status_id = e.status_id
"""


class SqliteExpenseStore(ExpenseStore):
    """SQLite-backed expense store seeded with reference data."""

    def __init__(self, db_path: str, seed_demo_data: bool = True):
        self.db_path = db_path
        self.seed_demo_data = seed_demo_data
        self._initialized = False
        self._ensure_directory()

    def is_connected(self) -> bool:
        """Try to open the database; True when it is usable."""
        try:
            with self._session():
                return True
        except sqlite3.Error:
            return False

    # ── Reads ────────────────────────────────────────────────────────

    def list_all(self) -> StoreResult[list[Expense]]:
        try:
            with self._session() as conn:
                rows = conn.execute(
                    _EXPENSE_SELECT + " ORDER BY e.created_at DESC, e.expense_id DESC"
                ).fetchall()
            return StoreResult.success([self._map_expense(r) for r in rows])
        except sqlite3.Error as e:
            error = self._format_error(e, "list_all")
            logger.error("Failed to list expenses: %s", e)
            return StoreResult.degraded(fallback_expenses(), error)

    def list_by_status(self, status: str) -> StoreResult[list[Expense]]:
        return self._list_with_status(status, "list_by_status")

    def list_pending(self) -> StoreResult[list[Expense]]:
        return self._list_with_status("Submitted", "list_pending")

    def _list_with_status(self, status: str, operation: str) -> StoreResult[list[Expense]]:
        try:
            with self._session() as conn:
                rows = conn.execute(
                    _EXPENSE_SELECT
                    + " WHERE s.status_name = ? ORDER BY e.created_at DESC, e.expense_id DESC",
                    (status,),
                ).fetchall()
            return StoreResult.success([self._map_expense(r) for r in rows])
        except sqlite3.Error as e:
            logger.error("Failed to list expenses with status %s: %s", status, e)
            fallback = [x for x in fallback_expenses() if x.status_name == status]
            return StoreResult.degraded(fallback, self._format_error(e, operation))

    def get_by_id(self, expense_id: int) -> StoreResult[Expense]:
        try:
            with self._session() as conn:
                row = conn.execute(
                    _EXPENSE_SELECT + " WHERE e.expense_id = ?",
                    (expense_id,),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error("Failed to load expense %s: %s", expense_id, e)
            return StoreResult.failure(self._format_error(e, "get_by_id"))
        if row is None:
            return StoreResult.failure("Expense not found")
        return StoreResult.success(self._map_expense(row))

    def list_categories(self) -> StoreResult[list[ExpenseCategory]]:
        try:
            with self._session() as conn:
                rows = conn.execute(
                    "SELECT category_id, category_name, is_active FROM categories ORDER BY category_id"
                ).fetchall()
            return StoreResult.success([
                ExpenseCategory(r["category_id"], r["category_name"], bool(r["is_active"]))
                for r in rows
            ])
        except sqlite3.Error as e:
            logger.error("Failed to list categories: %s", e)
            return StoreResult.degraded(fallback_categories(), self._format_error(e, "list_categories"))

    def list_statuses(self) -> StoreResult[list[ExpenseStatus]]:
        try:
            with self._session() as conn:
                rows = conn.execute(
                    "SELECT status_id, status_name FROM statuses ORDER BY status_id"
                ).fetchall()
            return StoreResult.success([ExpenseStatus(r["status_id"], r["status_name"]) for r in rows])
        except sqlite3.Error as e:
            logger.error("Failed to list statuses: %s", e)
            return StoreResult.degraded(fallback_statuses(), self._format_error(e, "list_statuses"))

    # ── Writes ───────────────────────────────────────────────────────

    def create(self, request: CreateExpenseRequest) -> StoreResult[Expense]:
        status_name = "Submitted" if request.submit_now else "Draft"
        now = self._now()
        try:
            with self._session() as conn:
                category = conn.execute(
                    "SELECT is_active FROM categories WHERE category_id = ?",
                    (request.category_id,),
                ).fetchone()
                if category is None:
                    return StoreResult.failure(f"Category {request.category_id} does not exist")
                if not category["is_active"]:
                    return StoreResult.failure(f"Category {request.category_id} is not active")

                user = conn.execute(
                    "SELECT user_id FROM users WHERE user_id = ?",
                    (request.user_id,),
                ).fetchone()
                if user is None:
                    return StoreResult.failure(f"User {request.user_id} does not exist")

                cur = conn.execute(
                    """
                    INSERT INTO expenses (
                        user_id, category_id, status_id, amount_minor, currency,
                        expense_date, description, submitted_at, created_at
                    )
                    VALUES (?, ?, (SELECT status_id FROM statuses WHERE status_name = ?), ?, 'GBP', ?, ?, ?, ?)
                    """,
                    (
                        request.user_id,
                        request.category_id,
                        status_name,
                        int(round(request.amount * 100)),
                        request.expense_date.isoformat(),
                        request.description,
                        now if request.submit_now else None,
                        now,
                    ),
                )
                row = conn.execute(
                    _EXPENSE_SELECT + " WHERE e.expense_id = ?",
                    (cur.lastrowid,),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error("Failed to create expense: %s", e)
            return StoreResult.failure(self._format_error(e, "create"))

        if row is None:
            return StoreResult.failure("Failed to create expense")
        return StoreResult.success(self._map_expense(row))

    def update_status(
        self, expense_id: int, status: str, reviewer_id: int | None = None
    ) -> StoreResult[Expense]:
        if status not in STATUS_NAMES:
            return StoreResult.failure(f"Unknown status '{status}'")

        now = self._now()
        try:
            with self._session() as conn:
                if status in ("Approved", "Rejected"):
                    cur = conn.execute(
                        """
                        UPDATE expenses
                        SET status_id = (SELECT status_id FROM statuses WHERE status_name = ?),
                            reviewed_by = ?, reviewed_at = ?
                        WHERE expense_id = ?
                        """,
                        (status, reviewer_id, now, expense_id),
                    )
                elif status == "Submitted":
                    cur = conn.execute(
                        """
                        UPDATE expenses
                        SET status_id = (SELECT status_id FROM statuses WHERE status_name = ?),
                            submitted_at = ?
                        WHERE expense_id = ?
                        """,
                        (status, now, expense_id),
                    )
                else:
                    cur = conn.execute(
                        """
                        UPDATE expenses
                        SET status_id = (SELECT status_id FROM statuses WHERE status_name = ?)
                        WHERE expense_id = ?
                        """,
                        (status, expense_id),
                    )
                if cur.rowcount == 0:
                    return StoreResult.failure("Expense not found")
                row = conn.execute(
                    _EXPENSE_SELECT + " WHERE e.expense_id = ?",
                    (expense_id,),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error("Failed to update expense %s: %s", expense_id, e)
            return StoreResult.failure(self._format_error(e, "update_status"))

        return StoreResult.success(self._map_expense(row))

    def approve(self, expense_id: int, reviewer_id: int) -> StoreResult[Expense]:
        current = self.get_by_id(expense_id)
        if current.failed:
            return current
        if current.value.status_name != "Submitted":
            return StoreResult.failure(
                f"Expense {expense_id} is {current.value.status_name}; "
                "only submitted expenses can be approved"
            )
        return self.update_status(expense_id, "Approved", reviewer_id)

    # ── Internals ────────────────────────────────────────────────────

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            if not self._initialized:
                self._init_db(conn)
                self._initialized = True
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self, conn: sqlite3.Connection) -> None:
        with conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id INTEGER PRIMARY KEY,
                    user_name TEXT NOT NULL,
                    email TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS categories (
                    category_id INTEGER PRIMARY KEY,
                    category_name TEXT NOT NULL UNIQUE,
                    is_active INTEGER NOT NULL DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS statuses (
                    status_id INTEGER PRIMARY KEY,
                    status_name TEXT NOT NULL UNIQUE
                );

                CREATE TABLE IF NOT EXISTS expenses (
                    expense_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    category_id INTEGER NOT NULL,
                    status_id INTEGER NOT NULL,
                    amount_minor INTEGER NOT NULL CHECK (amount_minor > 0),
                    currency TEXT NOT NULL DEFAULT 'GBP',
                    expense_date TEXT NOT NULL,
                    description TEXT,
                    receipt_file TEXT,
                    submitted_at TEXT,
                    reviewed_by INTEGER,
                    reviewed_at TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(user_id),
                    FOREIGN KEY(category_id) REFERENCES categories(category_id),
                    FOREIGN KEY(status_id) REFERENCES statuses(status_id)
                );
                """
            )
            conn.executemany(
                "INSERT OR IGNORE INTO statuses (status_id, status_name) VALUES (?, ?)",
                [(s.status_id, s.status_name) for s in fallback_statuses()],
            )
            conn.executemany(
                "INSERT OR IGNORE INTO categories (category_id, category_name, is_active) VALUES (?, ?, ?)",
                [(c.category_id, c.category_name, int(c.is_active)) for c in fallback_categories()],
            )
            conn.executemany(
                "INSERT OR IGNORE INTO users (user_id, user_name, email) VALUES (?, ?, ?)",
                [
                    (1, "Demo User", "demo@example.com"),
                    (2, "Demo Manager", "manager@example.com"),
                ],
            )
            if self.seed_demo_data:
                self._seed_expenses(conn)

    def _seed_expenses(self, conn: sqlite3.Connection) -> None:
        count_row = conn.execute("SELECT COUNT(1) AS cnt FROM expenses").fetchone()
        if count_row["cnt"]:
            return
        for sample in fallback_expenses():
            conn.execute(
                """
                INSERT INTO expenses (
                    user_id, category_id, status_id, amount_minor, currency,
                    expense_date, description, submitted_at, reviewed_by,
                    reviewed_at, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    sample.user_id,
                    sample.category_id,
                    sample.status_id,
                    sample.amount_minor,
                    sample.currency,
                    sample.expense_date.isoformat(),
                    sample.description,
                    self._stamp(sample.submitted_at),
                    sample.reviewed_by,
                    self._stamp(sample.reviewed_at),
                    self._stamp(sample.created_at),
                ),
            )

    def _ensure_directory(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.db_path))
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            logger.warning("Cannot create database directory %s: %s", directory, e)

    def _format_error(self, error: Exception, operation: str) -> str:
        return f"Error in {type(self).__name__}.{operation}: {error}"

    @staticmethod
    def _map_expense(row: sqlite3.Row) -> Expense:
        return Expense(
            expense_id=row["expense_id"],
            user_id=row["user_id"],
            user_name=row["user_name"],
            email=row["email"],
            category_id=row["category_id"],
            category_name=row["category_name"],
            status_id=row["status_id"],
            status_name=row["status_name"],
            amount_minor=row["amount_minor"],
            amount=row["amount_minor"] / 100,
            currency=row["currency"],
            expense_date=date.fromisoformat(row["expense_date"]),
            description=row["description"],
            receipt_file=row["receipt_file"],
            submitted_at=_parse_stamp(row["submitted_at"]),
            reviewed_by=row["reviewed_by"],
            reviewed_at=_parse_stamp(row["reviewed_at"]),
            created_at=_parse_stamp(row["created_at"]),
        )

    @staticmethod
    def _stamp(value: datetime | None) -> str | None:
        return value.isoformat(timespec="seconds") if value else None

    @staticmethod
    def _now() -> str:
        return datetime.now().isoformat(timespec="seconds")


def _parse_stamp(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
