"""Tool catalog and dispatch registry."""

import asyncio
import json
import logging
import time
from dataclasses import asdict, is_dataclass
from typing import Any, Iterable

from assistant.config import AssistantConfig
from assistant.exceptions import ToolArgumentError
from assistant.messages import ToolCall, ToolResult
from expenses.models import StoreResult
from expenses.store import ExpenseStore
from tools.base_tool import Tool, ToolDeclaration
from tools.expense_tools import EXPENSE_TOOLS

logger = logging.getLogger(__name__)

# Built once; shared read-only by every request.
DECLARATIONS: tuple[ToolDeclaration, ...] = tuple(cls.declaration() for cls in EXPENSE_TOOLS)


class ToolRegistry:
    """Dispatches tool calls to the expense store; failures come back as results."""

    def __init__(self, store: ExpenseStore, config: AssistantConfig):
        self.config = config
        self._tools: dict[str, Tool] = {
            cls.name: cls(store, config.user_id) for cls in EXPENSE_TOOLS
        }

    def declarations(self) -> list[ToolDeclaration]:
        """The fixed catalog in advertising order."""
        return list(DECLARATIONS)

    def function_specs(self) -> list[dict]:
        """Declarations in the function-calling wire format."""
        return [d.as_function_spec() for d in DECLARATIONS]

    @property
    def tool_names(self) -> list[str]:
        return [d.name for d in DECLARATIONS]

    def get_tool(self, name: str) -> Tool | None:
        return self._tools.get(name)

    async def execute(self, call: ToolCall) -> ToolResult:
        """Run one tool call. Never raises except on cancellation."""
        start = time.monotonic()
        tool = self._tools.get(call.name)
        if tool is None:
            return self._result(call, f"Unknown function: {call.name}", True, start)

        timeout = self._timeout_for(tool)
        try:
            if call.parse_error:
                raise ToolArgumentError(call.parse_error)
            kwargs = tool.validate_args(call.args)
            outcome = await asyncio.wait_for(tool.execute(**kwargs), timeout=timeout)
        except ToolArgumentError as e:
            return self._result(call, f"Invalid arguments for {call.name}: {e}", True, start)
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out after %ss", call.name, timeout)
            return self._result(
                call, f"Error executing {call.name}: timed out after {timeout:g}s", True, start
            )
        except Exception as e:
            logger.exception("Tool %s failed", call.name)
            return self._result(call, f"Error executing {call.name}: {e}", True, start)

        text, is_error = render_outcome(outcome)
        return self._result(call, text, is_error, start)

    async def execute_all(self, calls: Iterable[ToolCall]) -> list[ToolResult]:
        """Run calls (concurrently when enabled); results keep request order."""
        calls = list(calls)
        if self.config.tool_execution.parallel and len(calls) > 1:
            return list(await asyncio.gather(*(self.execute(c) for c in calls)))
        return [await self.execute(c) for c in calls]

    def _timeout_for(self, tool: Tool) -> float | None:
        if tool.writes:
            return None
        settings = self.config.tool_execution
        if tool.name in settings.timeouts:
            return settings.timeouts[tool.name]
        if tool.timeout_seconds is not None:
            return tool.timeout_seconds
        return settings.default_timeout

    @staticmethod
    def _result(call: ToolCall, text: str, is_error: bool, start: float) -> ToolResult:
        return ToolResult(
            call=call,
            text=text,
            is_error=is_error,
            duration_ms=(time.monotonic() - start) * 1000,
        )


def render_outcome(outcome: StoreResult) -> tuple[str, bool]:
    """Serialize a store outcome for the model; store errors stay visible."""
    if outcome.failed:
        return f"Error: {outcome.error}", True
    if outcome.is_degraded:
        return (
            f"Error: {outcome.error}\n"
            f"Fallback data (not live): {serialize(outcome.value)}",
            True,
        )
    return serialize(outcome.value), False


def serialize(value: Any) -> str:
    return json.dumps(_plain(value), default=str)


def _plain(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value
