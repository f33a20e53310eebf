"""ChatOrchestrator - drives one chat turn through the tool-calling protocol."""

from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from assistant.config import AssistantConfig
from assistant.conversation import Turn, assemble_messages, build_system_prompt
from assistant.exceptions import BackendConnectionError
from assistant.messages import Completion, Message, ToolResult
from assistant.models import CompletionBackend, create_backend
from assistant.telemetry import Telemetry
from expenses.store import ExpenseStore
from tools.tool_registry import ToolRegistry


NOT_CONFIGURED_MESSAGE = (
    "GenAI services are not configured. Set completion.endpoint and "
    "completion.model_name in config.json to enable AI-powered chat."
)


class TurnState(str, Enum):
    UNCONFIGURED = "unconfigured"
    AWAITING_FIRST_COMPLETION = "awaiting_first_completion"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_SECOND_COMPLETION = "awaiting_second_completion"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TurnOutcome:
    """Result of one chat turn."""
    text: str
    state: TurnState
    rounds: int = 0
    tool_results: list[ToolResult] = field(default_factory=list)


class ChatOrchestrator:
    """
    Runs a chat turn: first completion with the tool catalog, tool execution,
    then a tool-free completion whose text is the answer.
    Backend failures come back as an apology, never as an exception.
    """

    def __init__(
        self,
        config: AssistantConfig,
        store: ExpenseStore,
        backend: CompletionBackend | None = None,
        telemetry: Telemetry | None = None,
    ):
        self.config = config
        self.registry = ToolRegistry(store, config)
        self.telemetry = telemetry or Telemetry(config.telemetry)
        self._backend = backend
        self._logger = self._build_logger(config.log_dir)

    # ── Configuration gate ───────────────────────────────────────────

    def is_configured(self) -> bool:
        """True when the completion settings are complete and a client exists."""
        missing = self.config.completion.missing_settings()
        if missing:
            return False
        if self._backend is None:
            try:
                self._backend = create_backend(self.config)
            except Exception as e:
                self._logger.error("Failed to create completion backend: %s", e)
                return False
        return True

    # ── Turn loop ────────────────────────────────────────────────────

    async def get_chat_response(
        self,
        message: str,
        history: Iterable[Turn | str] = (),
    ) -> str:
        outcome = await self.run_turn(message, history)
        return outcome.text

    async def run_turn(
        self,
        message: str,
        history: Iterable[Turn | str] = (),
    ) -> TurnOutcome:
        turn_id = uuid.uuid4().hex[:12]
        start = time.monotonic()

        if not self.is_configured():
            outcome = TurnOutcome(NOT_CONFIGURED_MESSAGE, TurnState.UNCONFIGURED)
            self._record_turn(turn_id, outcome, start)
            return outcome

        rounds = 0
        tool_results: list[ToolResult] = []
        state = TurnState.AWAITING_FIRST_COMPLETION

        try:
            messages = assemble_messages(history, message, self._get_system_prompt())

            for _ in range(self.config.max_tool_rounds):
                rounds += 1
                completion = await self._complete(
                    turn_id, messages, self.registry.function_specs(), rounds
                )
                if not completion.wants_tools:
                    outcome = TurnOutcome(completion.text, TurnState.DONE, rounds, tool_results)
                    self._record_turn(turn_id, outcome, start)
                    return outcome

                state = TurnState.EXECUTING_TOOLS
                results = await self.registry.execute_all(completion.tool_calls)
                self._record_tools(turn_id, results)
                tool_results.extend(results)

                messages.append(Message.assistant(completion.text, completion.tool_calls))
                messages.extend(Message.tool(r) for r in results)
                state = TurnState.AWAITING_SECOND_COMPLETION

            # Final round never offers tools.
            rounds += 1
            completion = await self._complete(turn_id, messages, None, rounds)
            outcome = TurnOutcome(completion.text, TurnState.DONE, rounds, tool_results)

        except Exception as e:
            self._logger.error("Chat turn %s failed in state %s: %s", turn_id, state.value, e)
            outcome = TurnOutcome(
                f"I encountered an error: {e}. Please try again.",
                TurnState.FAILED,
                rounds,
                tool_results,
            )

        self._record_turn(turn_id, outcome, start)
        return outcome

    async def _complete(
        self,
        turn_id: str,
        messages: list[Message],
        tools: list[dict] | None,
        round: int,
    ) -> Completion:
        """One completion round bounded by the round timeout."""
        timeout = self.config.backend.round_timeout
        model = self._backend.model_name
        start = time.monotonic()
        try:
            completion = await asyncio.wait_for(
                self._backend.complete(list(messages), tools=tools),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            error = f"completion round timed out after {timeout:g}s"
            self.telemetry.record_completion(
                turn_id, model, round, 0, 0, (time.monotonic() - start) * 1000, error=error
            )
            raise BackendConnectionError(error)
        except Exception as e:
            self.telemetry.record_completion(
                turn_id, model, round, 0, 0, (time.monotonic() - start) * 1000, error=str(e)
            )
            raise

        self.telemetry.record_completion(
            turn_id,
            model,
            round,
            completion.prompt_tokens,
            completion.completion_tokens,
            (time.monotonic() - start) * 1000,
            tool_calls=len(completion.tool_calls),
        )
        return completion

    def _get_system_prompt(self) -> str:
        # Rendered per turn so the date stays current across midnight.
        return build_system_prompt(self.config.prompt_profile)

    # ── Telemetry / logging ──────────────────────────────────────────

    def _record_tools(self, turn_id: str, results: list[ToolResult]) -> None:
        for result in results:
            if result.is_error:
                self._logger.warning("Tool %s returned an error: %s", result.call.name, result.text)
            self.telemetry.record_tool_call(
                turn_id,
                result.call.name,
                result.call.args,
                result.duration_ms,
                result.is_error,
                result.text,
            )

    def _record_turn(self, turn_id: str, outcome: TurnOutcome, start: float) -> None:
        self.telemetry.record_turn(
            turn_id,
            outcome.state.value,
            outcome.rounds,
            len(outcome.tool_results),
            (time.monotonic() - start) * 1000,
        )

    def _build_logger(self, log_dir: str) -> logging.Logger:
        os.makedirs(log_dir, exist_ok=True)
        logger = logging.getLogger(f"assistant.orchestrator.{os.path.abspath(log_dir)}")
        if logger.handlers:
            return logger

        logger.setLevel(logging.INFO)
        log_path = os.path.join(log_dir, "assistant.log")
        handler = logging.FileHandler(log_path, encoding="utf-8")
        formatter = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False
        return logger
