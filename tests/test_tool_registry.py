import asyncio
import json
import tempfile
import time
import unittest
from datetime import date
from pathlib import Path

from assistant.config import AssistantConfig, ToolExecutionConfig
from assistant.messages import ToolCall
from expenses.fallback import fallback_expenses
from expenses.models import StoreResult
from expenses.store import SqliteExpenseStore
from tools.tool_registry import DECLARATIONS, ToolRegistry, render_outcome
from fakes import FakeStore


CATALOG = [
    "get_all_expenses",
    "get_expenses_by_status",
    "get_pending_expenses",
    "create_expense",
    "approve_expense",
    "get_categories",
]


def _registry(store=None, **tool_settings) -> ToolRegistry:
    config = AssistantConfig(tool_execution=ToolExecutionConfig(**tool_settings), user_id=5)
    return ToolRegistry(store or FakeStore(), config)


class TestCatalog(unittest.TestCase):
    def test_declarations_in_catalog_order(self):
        registry = _registry()
        self.assertEqual([d.name for d in registry.declarations()], CATALOG)
        self.assertEqual(registry.tool_names, CATALOG)

    def test_required_arguments_declared(self):
        required = {
            d.name: d.parameters.get("required", []) for d in DECLARATIONS
        }
        self.assertEqual(required["get_expenses_by_status"], ["status"])
        self.assertEqual(required["create_expense"], ["amount", "categoryId", "date"])
        self.assertEqual(required["approve_expense"], ["expenseId"])
        self.assertEqual(required["get_all_expenses"], [])

    def test_function_specs_are_copies(self):
        registry = _registry()
        specs = registry.function_specs()
        self.assertEqual(specs[0]["type"], "function")
        specs[1]["function"]["parameters"]["required"].append("mutated")
        self.assertEqual(registry.function_specs()[1]["function"]["parameters"]["required"], ["status"])


class TestExecute(unittest.IsolatedAsyncioTestCase):
    async def test_unknown_function(self):
        result = await _registry().execute(ToolCall("delete_everything", {}))
        self.assertTrue(result.is_error)
        self.assertEqual(result.text, "Unknown function: delete_everything")

    async def test_success_is_json(self):
        result = await _registry().execute(ToolCall("get_categories", {}))
        self.assertFalse(result.is_error)
        names = [c["category_name"] for c in json.loads(result.text)]
        self.assertEqual(names, ["Travel", "Meals", "Supplies", "Accommodation"])

    async def test_status_is_normalized(self):
        store = FakeStore()
        result = await _registry(store).execute(
            ToolCall("get_expenses_by_status", {"status": "approved"})
        )
        self.assertFalse(result.is_error)
        self.assertIn(("list_by_status", "Approved"), store.calls)

    async def test_invalid_status(self):
        result = await _registry().execute(
            ToolCall("get_expenses_by_status", {"status": "Paid"})
        )
        self.assertTrue(result.is_error)
        self.assertTrue(result.text.startswith("Invalid arguments for get_expenses_by_status: "))

    async def test_missing_required_argument(self):
        result = await _registry().execute(ToolCall("approve_expense", {}))
        self.assertEqual(
            result.text,
            "Invalid arguments for approve_expense: missing required argument(s): expenseId",
        )

    async def test_undecodable_arguments(self):
        call = ToolCall("create_expense", {}, parse_error="arguments are not valid JSON (Expecting value)")
        result = await _registry().execute(call)
        self.assertTrue(result.is_error)
        self.assertIn("not valid JSON", result.text)

    async def test_create_expense_coerces_and_binds_principal(self):
        store = FakeStore()
        result = await _registry(store).execute(ToolCall("create_expense", {
            "amount": "45.50",
            "categoryId": "2",
            "date": "2024-03-01",
            "description": " Team lunch ",
        }))
        self.assertFalse(result.is_error, result.text)
        request = next(c[1] for c in store.calls if c[0] == "create")
        self.assertEqual(request.user_id, 5)
        self.assertEqual(request.amount, 45.5)
        self.assertEqual(request.category_id, 2)
        self.assertEqual(request.expense_date, date(2024, 3, 1))
        self.assertEqual(request.description, "Team lunch")
        self.assertTrue(request.submit_now)

    async def test_create_expense_rejects_bad_values(self):
        cases = [
            ({"amount": 0, "categoryId": 1, "date": "2024-03-01"}, "'amount'"),
            ({"amount": "ten", "categoryId": 1, "date": "2024-03-01"}, "'amount' must be a number"),
            ({"amount": 10, "categoryId": 0, "date": "2024-03-01"}, "'categoryId'"),
            ({"amount": 10, "categoryId": 1, "date": "01/03/2024"}, "YYYY-MM-DD"),
            ({"amount": 10, "categoryId": 1, "date": "20240102"}, "YYYY-MM-DD"),
            ({"amount": 10, "categoryId": 1, "date": "2024-W01-2"}, "YYYY-MM-DD"),
            ({"amount": 10, "categoryId": 1, "date": "2024-1-2"}, "YYYY-MM-DD"),
            ({"amount": 10, "categoryId": 1, "date": "2024-02-30"}, "not a valid calendar date"),
            ({"amount": True, "categoryId": 1, "date": "2024-03-01"}, "'amount'"),
        ]
        registry = _registry()
        for args, expected in cases:
            with self.subTest(args=args):
                result = await registry.execute(ToolCall("create_expense", args))
                self.assertTrue(result.is_error)
                self.assertTrue(result.text.startswith("Invalid arguments for create_expense: "))
                self.assertIn(expected, result.text)

    async def test_approve_passes_principal_as_reviewer(self):
        store = FakeStore()
        result = await _registry(store).execute(ToolCall("approve_expense", {"expenseId": 1}))
        self.assertFalse(result.is_error)
        self.assertIn(("approve", 1, 5), store.calls)

    async def test_store_error_is_reported(self):
        store = FakeStore(overrides={"approve": StoreResult.failure("Expense not found")})
        result = await _registry(store).execute(ToolCall("approve_expense", {"expenseId": 9}))
        self.assertTrue(result.is_error)
        self.assertEqual(result.text, "Error: Expense not found")

    async def test_degraded_read_keeps_error_visible(self):
        note = "Error in SqliteExpenseStore.list_all: unable to open database file"
        store = FakeStore(overrides={"list_all": StoreResult.degraded(fallback_expenses(), note)})
        result = await _registry(store).execute(ToolCall("get_all_expenses", {}))

        self.assertTrue(result.is_error)
        self.assertTrue(result.text.startswith("Error: " + note))
        self.assertIn("Client meeting travel", result.text)
        self.assertIn("Business lunch", result.text)

    async def test_unexpected_exception_becomes_result(self):
        store = FakeStore(overrides={"list_pending": RuntimeError("disk on fire")})
        result = await _registry(store).execute(ToolCall("get_pending_expenses", {}))
        self.assertTrue(result.is_error)
        self.assertEqual(result.text, "Error executing get_pending_expenses: disk on fire")

    async def test_timeout_becomes_result(self):
        store = FakeStore(delays={"list_all": 0.5})
        registry = _registry(store, timeouts={"get_all_expenses": 0.1})
        result = await registry.execute(ToolCall("get_all_expenses", {}))
        self.assertTrue(result.is_error)
        self.assertEqual(result.text, "Error executing get_all_expenses: timed out after 0.1s")


class SlowWriteStore(SqliteExpenseStore):
    def create(self, request):
        time.sleep(0.3)
        return super().create(request)

    def approve(self, expense_id, reviewer_id):
        time.sleep(0.3)
        return super().approve(expense_id, reviewer_id)


class TestWriteTools(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SlowWriteStore(str(Path(self._tmp.name) / "expenses.db"))

    def tearDown(self):
        self._tmp.cleanup()

    async def test_slow_create_reports_what_was_written(self):
        registry = _registry(self.store, timeouts={"create_expense": 0.1}, default_timeout=0.1)
        before = len(self.store.list_all().value)

        result = await registry.execute(ToolCall("create_expense", {
            "amount": 12.5, "categoryId": 2, "date": "2024-03-01", "description": "Taxi",
        }))

        self.assertFalse(result.is_error, result.text)
        self.assertEqual(json.loads(result.text)["description"], "Taxi")
        self.assertEqual(len(self.store.list_all().value), before + 1)

    async def test_slow_approve_reports_what_was_written(self):
        registry = _registry(self.store, default_timeout=0.1)

        result = await registry.execute(ToolCall("approve_expense", {"expenseId": 1}))

        self.assertFalse(result.is_error, result.text)
        self.assertEqual(self.store.get_by_id(1).value.status_name, "Approved")

    async def test_reads_still_time_out(self):
        registry = _registry(FakeStore(delays={"list_categories": 0.3}), default_timeout=0.1)
        result = await registry.execute(ToolCall("get_categories", {}))
        self.assertEqual(result.text, "Error executing get_categories: timed out after 0.1s")


class TestExecuteAll(unittest.IsolatedAsyncioTestCase):
    async def test_results_keep_request_order(self):
        store = FakeStore(delays={"list_all": 0.3})
        registry = _registry(store)
        calls = [
            ToolCall("get_all_expenses", {}, call_id="a"),
            ToolCall("get_categories", {}, call_id="b"),
            ToolCall("nope", {}, call_id="c"),
        ]
        results = await registry.execute_all(calls)

        self.assertEqual([r.call.call_id for r in results], ["a", "b", "c"])
        self.assertFalse(results[0].is_error)
        self.assertTrue(results[2].is_error)

    async def test_parallel_execution_overlaps(self):
        store = FakeStore(delays={"list_all": 0.3, "list_categories": 0.3})
        registry = _registry(store)
        loop = asyncio.get_running_loop()
        start = loop.time()
        await registry.execute_all([
            ToolCall("get_all_expenses", {}),
            ToolCall("get_categories", {}),
        ])
        self.assertLess(loop.time() - start, 0.55)

    async def test_sequential_when_disabled(self):
        store = FakeStore()
        registry = _registry(store, parallel=False)
        results = await registry.execute_all([
            ToolCall("get_categories", {}),
            ToolCall("get_pending_expenses", {}),
        ])
        self.assertEqual([c[0] for c in store.calls], ["list_categories", "list_pending"])
        self.assertEqual(len(results), 2)


class TestRenderOutcome(unittest.TestCase):
    def test_render_states(self):
        self.assertEqual(render_outcome(StoreResult.success({"a": 1})), ('{"a": 1}', False))
        self.assertEqual(render_outcome(StoreResult.failure("nope")), ("Error: nope", True))
        text, is_error = render_outcome(StoreResult.degraded([1], "offline"))
        self.assertTrue(is_error)
        self.assertEqual(text, "Error: offline\nFallback data (not live): [1]")


if __name__ == "__main__":
    unittest.main()
