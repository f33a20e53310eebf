"""Abstract base class for all expense tools."""

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from assistant.exceptions import ToolArgumentError
from expenses.models import StoreResult
from expenses.store import ExpenseStore


@dataclass(frozen=True)
class ToolDeclaration:
    """Name, description and JSON-schema parameters advertised to the model."""
    name: str
    description: str
    parameters: dict = field(default_factory=dict)

    def as_function_spec(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": copy.deepcopy(self.parameters),
            },
        }


class Tool(ABC):
    """Base class for tools bound to one expense store operation."""

    name: str = ""
    description: str = ""
    parameters: dict = {"type": "object", "properties": {}}
    arg_schema: dict[str, type | tuple[type, ...]] = {}
    required_args: list[str] = []
    timeout_seconds: float | None = None
    # Write tools always run to completion; no tool timeout applies.
    writes: bool = False

    def __init__(self, store: ExpenseStore, user_id: int):
        self.store = store
        self.user_id = user_id

    @classmethod
    def declaration(cls) -> ToolDeclaration:
        return ToolDeclaration(cls.name, cls.description, cls.parameters)

    def validate_args(self, args: dict) -> dict:
        """Check required args and types; returns the coerced arguments."""
        if not isinstance(args, dict):
            raise ToolArgumentError("arguments must be a JSON object")

        missing = [
            key for key in self.required_args
            if key not in args or args.get(key) in (None, "")
        ]
        if missing:
            raise ToolArgumentError(f"missing required argument(s): {', '.join(missing)}")

        cleaned = {}
        for key, expected in self.arg_schema.items():
            if key not in args or args[key] is None:
                continue
            coerced, ok = _coerce_value(args[key], expected)
            if not ok:
                raise ToolArgumentError(
                    f"'{key}' must be {_type_label(expected)}, got {type(args[key]).__name__}"
                )
            cleaned[key] = coerced
        return self.normalize_args(cleaned)

    def normalize_args(self, args: dict) -> dict:
        """Hook for tool-specific checks after type coercion."""
        return args

    @abstractmethod
    def run(self, **kwargs) -> StoreResult:
        """Call the bound store operation."""
        ...

    async def execute(self, **kwargs) -> StoreResult:
        """Run the blocking store call off the event loop."""
        return await asyncio.to_thread(self.run, **kwargs)


def _coerce_value(value: object, expected: type | tuple[type, ...]) -> tuple[object, bool]:
    expected_types = expected if isinstance(expected, tuple) else (expected,)

    # bool is an int subclass but never a valid amount or id
    if isinstance(value, bool) and bool not in expected_types:
        return value, False

    if str in expected_types and isinstance(value, str):
        return value, True

    if int in expected_types:
        if isinstance(value, int):
            return value, True
        if isinstance(value, float) and value.is_integer():
            return int(value), True
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip()), True

    if float in expected_types:
        if isinstance(value, (int, float)):
            return float(value), True
        if isinstance(value, str):
            try:
                return float(value.strip()), True
            except ValueError:
                return value, False

    if isinstance(value, expected_types):
        return value, True

    return value, False


def _type_label(expected: type | tuple[type, ...]) -> str:
    expected_types = expected if isinstance(expected, tuple) else (expected,)
    labels = {str: "a string", int: "an integer", float: "a number", bool: "a boolean"}
    return " or ".join(labels.get(t, t.__name__) for t in expected_types)
