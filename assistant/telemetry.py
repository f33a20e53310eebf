"""Telemetry and metrics logging for chat turns."""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
import json
import logging
import os
import threading
import time
from typing import Any

from assistant.config import TelemetryConfig

logger = logging.getLogger(__name__)


@dataclass
class CompletionCallMetric:
    """Metrics for a single completion round."""
    turn_id: str
    model: str
    round: int
    prompt_tokens: int
    completion_tokens: int
    latency_ms: float
    tool_calls: int = 0
    error: str | None = None


@dataclass
class ToolCallMetric:
    """Metrics for a single tool call."""
    turn_id: str
    tool_name: str
    args: dict
    duration_ms: float
    is_error: bool
    result_summary: str


@dataclass
class TurnMetric:
    """Metrics for one chat turn."""
    turn_id: str
    final_state: str
    completion_rounds: int
    tool_calls: int
    duration_ms: float


@dataclass
class TelemetrySummary:
    """Process-level metrics summary."""
    session_id: str
    turns: int
    failed_turns: int
    completion_calls: list[CompletionCallMetric]
    tool_calls: list[ToolCallMetric]
    total_duration_ms: float


class Telemetry:
    """Capture structured telemetry for the assistant."""

    def __init__(self, config: TelemetryConfig, session_id: str = "assistant"):
        self.config = config
        self.session_id = session_id
        self._lock = threading.Lock()
        self._start_time = time.monotonic()
        self._completion_calls: list[CompletionCallMetric] = []
        self._tool_calls: list[ToolCallMetric] = []
        self._turns: list[TurnMetric] = []
        self._log_path: str | None = None
        self._tracer = None

        if self.config.enabled:
            os.makedirs(self.config.log_dir, exist_ok=True)
            self._log_path = os.path.join(self.config.log_dir, f"{session_id}.jsonl")
            if self.config.otel_enabled:
                self._setup_otel()

    def record_completion(
        self,
        turn_id: str,
        model: str,
        round: int,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: float,
        tool_calls: int = 0,
        error: str | None = None,
    ) -> None:
        """Record a completion round metric."""
        if not self.config.enabled:
            return
        metric = CompletionCallMetric(
            turn_id=turn_id,
            model=model,
            round=round,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=latency_ms,
            tool_calls=tool_calls,
            error=error,
        )
        with self._lock:
            self._completion_calls.append(metric)
        self._log_event("completion_call", asdict(metric))
        self._emit_span("completion_call", asdict(metric))

    def record_tool_call(
        self,
        turn_id: str,
        tool_name: str,
        args: dict,
        duration_ms: float,
        is_error: bool,
        result_summary: str,
    ) -> None:
        """Record a tool call metric."""
        if not self.config.enabled:
            return
        metric = ToolCallMetric(
            turn_id=turn_id,
            tool_name=tool_name,
            args=args,
            duration_ms=duration_ms,
            is_error=is_error,
            result_summary=result_summary[:200],
        )
        with self._lock:
            self._tool_calls.append(metric)
        self._log_event("tool_call", asdict(metric))
        self._emit_span("tool_call", asdict(metric))

    def record_turn(
        self,
        turn_id: str,
        final_state: str,
        completion_rounds: int,
        tool_calls: int,
        duration_ms: float,
    ) -> None:
        """Record the outcome of a whole chat turn."""
        if not self.config.enabled:
            return
        metric = TurnMetric(
            turn_id=turn_id,
            final_state=final_state,
            completion_rounds=completion_rounds,
            tool_calls=tool_calls,
            duration_ms=duration_ms,
        )
        with self._lock:
            self._turns.append(metric)
        self._log_event("turn", asdict(metric))

    def summary(self) -> TelemetrySummary:
        with self._lock:
            turns = list(self._turns)
            completion_calls = list(self._completion_calls)
            tool_calls = list(self._tool_calls)
        return TelemetrySummary(
            session_id=self.session_id,
            turns=len(turns),
            failed_turns=sum(1 for t in turns if t.final_state == "failed"),
            completion_calls=completion_calls,
            tool_calls=tool_calls,
            total_duration_ms=(time.monotonic() - self._start_time) * 1000,
        )

    def summary_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable summary."""
        summary = self.summary()
        return {
            "session_id": summary.session_id,
            "turns": summary.turns,
            "failed_turns": summary.failed_turns,
            "completion_calls": [asdict(m) for m in summary.completion_calls],
            "tool_calls": [asdict(m) for m in summary.tool_calls],
            "total_duration_ms": summary.total_duration_ms,
        }

    def _log_event(self, event_type: str, payload: dict[str, Any]) -> None:
        if not self.config.enabled or not self._log_path:
            return
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": self.session_id,
            "event": event_type,
            **payload,
        }
        line = json.dumps(record, default=str)
        try:
            with self._lock:
                with open(self._log_path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError as e:
            logger.warning("Failed to write telemetry event %s to %s: %s", event_type, self._log_path, e)

    def _emit_span(self, name: str, attributes: dict[str, Any]) -> None:
        if not self._tracer:
            return
        try:
            with self._tracer.start_as_current_span(name) as span:
                for key, value in attributes.items():
                    if value is None:
                        continue
                    if isinstance(value, dict):
                        value = json.dumps(value, default=str)
                    span.set_attribute(key, value)
        except Exception:
            return

    def _setup_otel(self) -> None:
        try:
            from opentelemetry import trace
            from opentelemetry.sdk.resources import Resource
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

            resource = Resource.create({"service.name": self.config.otel_service_name})
            provider = TracerProvider(resource=resource)
            if self.config.otel_endpoint:
                exporter = OTLPSpanExporter(endpoint=self.config.otel_endpoint)
                provider.add_span_processor(BatchSpanProcessor(exporter))

            trace.set_tracer_provider(provider)
            self._tracer = trace.get_tracer(__name__)
        except Exception:
            self._tracer = None
            self._log_event(
                "telemetry_warning",
                {"message": "OpenTelemetry not available or failed to initialize."},
            )
