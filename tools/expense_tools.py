"""Expense tools - the fixed catalog the assistant may call."""

import math
import re
from datetime import date

from assistant.exceptions import ToolArgumentError
from expenses.models import STATUS_NAMES, CreateExpenseRequest, StoreResult
from tools.base_tool import Tool


_NO_PARAMETERS = {"type": "object", "properties": {}}
_ISO_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


class GetAllExpensesTool(Tool):
    name = "get_all_expenses"
    description = "Retrieve all expenses in the system, newest first."
    parameters = _NO_PARAMETERS

    def run(self, **kwargs) -> StoreResult:
        return self.store.list_all()


class GetExpensesByStatusTool(Tool):
    name = "get_expenses_by_status"
    description = "Retrieve expenses filtered by status (Draft, Submitted, Approved, Rejected)."
    parameters = {
        "type": "object",
        "properties": {
            "status": {
                "type": "string",
                "enum": list(STATUS_NAMES),
                "description": "The status to filter by",
            },
        },
        "required": ["status"],
    }
    arg_schema = {"status": str}
    required_args = ["status"]

    def normalize_args(self, args: dict) -> dict:
        wanted = args["status"].strip().lower()
        for status in STATUS_NAMES:
            if status.lower() == wanted:
                return {"status": status}
        raise ToolArgumentError(f"status must be one of {', '.join(STATUS_NAMES)}")

    def run(self, status: str, **kwargs) -> StoreResult:
        return self.store.list_by_status(status)


class GetPendingExpensesTool(Tool):
    name = "get_pending_expenses"
    description = "Retrieve all expenses awaiting approval (status Submitted)."
    parameters = _NO_PARAMETERS

    def run(self, **kwargs) -> StoreResult:
        return self.store.list_pending()


class CreateExpenseTool(Tool):
    name = "create_expense"
    writes = True
    description = (
        "Create and submit a new expense for the current user. "
        "Call get_categories first if the category id is not known."
    )
    parameters = {
        "type": "object",
        "properties": {
            "amount": {
                "type": "number",
                "description": "The expense amount in pounds (e.g. 25.50)",
            },
            "categoryId": {
                "type": "integer",
                "description": "Category id (1=Travel, 2=Meals, 3=Supplies, 4=Accommodation)",
            },
            "date": {
                "type": "string",
                "description": "Expense date in YYYY-MM-DD format",
            },
            "description": {
                "type": "string",
                "description": "Optional description of the expense",
            },
        },
        "required": ["amount", "categoryId", "date"],
    }
    arg_schema = {"amount": float, "categoryId": int, "date": str, "description": str}
    required_args = ["amount", "categoryId", "date"]

    def normalize_args(self, args: dict) -> dict:
        if not math.isfinite(args["amount"]) or args["amount"] <= 0:
            raise ToolArgumentError("'amount' must be a positive number")
        if args["categoryId"] < 1:
            raise ToolArgumentError("'categoryId' must be a positive integer")
        expense_date = _parse_iso_date(args["date"])
        description = (args.get("description") or "").strip()
        return {
            "amount": args["amount"],
            "category_id": args["categoryId"],
            "expense_date": expense_date,
            "description": description or None,
        }

    def run(self, amount: float, category_id: int, expense_date: date,
            description: str | None = None, **kwargs) -> StoreResult:
        request = CreateExpenseRequest(
            user_id=self.user_id,
            category_id=category_id,
            amount=amount,
            expense_date=expense_date,
            description=description,
            submit_now=True,
        )
        return self.store.create(request)


def _parse_iso_date(value: str) -> date:
    """Strict YYYY-MM-DD; basic and week-date ISO forms are rejected."""
    value = value.strip()
    if not _ISO_DATE_RE.fullmatch(value):
        raise ToolArgumentError(f"'date' must use YYYY-MM-DD format, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ToolArgumentError(f"'date' is not a valid calendar date, got {value!r}")


class ApproveExpenseTool(Tool):
    name = "approve_expense"
    writes = True
    description = "Approve a submitted expense by its id."
    parameters = {
        "type": "object",
        "properties": {
            "expenseId": {
                "type": "integer",
                "description": "The id of the expense to approve",
            },
        },
        "required": ["expenseId"],
    }
    arg_schema = {"expenseId": int}
    required_args = ["expenseId"]

    def normalize_args(self, args: dict) -> dict:
        if args["expenseId"] < 1:
            raise ToolArgumentError("'expenseId' must be a positive integer")
        return {"expense_id": args["expenseId"]}

    def run(self, expense_id: int, **kwargs) -> StoreResult:
        return self.store.approve(expense_id, self.user_id)


class GetCategoriesTool(Tool):
    name = "get_categories"
    description = "Retrieve all expense categories with their ids."
    parameters = _NO_PARAMETERS

    def run(self, **kwargs) -> StoreResult:
        return self.store.list_categories()


# Advertised to the model in this order.
EXPENSE_TOOLS: tuple[type[Tool], ...] = (
    GetAllExpensesTool,
    GetExpensesByStatusTool,
    GetPendingExpensesTool,
    CreateExpenseTool,
    ApproveExpenseTool,
    GetCategoriesTool,
)
