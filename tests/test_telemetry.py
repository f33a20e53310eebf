import json
from pathlib import Path

from assistant.config import TelemetryConfig
from assistant.telemetry import Telemetry


def test_telemetry_records_events(tmp_path: Path):
    config = TelemetryConfig(
        enabled=True,
        log_dir=str(tmp_path),
        otel_enabled=False,
        otel_endpoint=None,
        otel_service_name="expense-assistant",
    )
    telemetry = Telemetry(config, session_id="proc123")

    telemetry.record_completion(
        turn_id="t1",
        model="llama3.1",
        round=1,
        prompt_tokens=10,
        completion_tokens=20,
        latency_ms=123.4,
        tool_calls=1,
    )
    telemetry.record_tool_call(
        turn_id="t1",
        tool_name="get_pending_expenses",
        args={},
        duration_ms=5.5,
        is_error=False,
        result_summary="[]",
    )
    telemetry.record_turn(
        turn_id="t1",
        final_state="done",
        completion_rounds=2,
        tool_calls=1,
        duration_ms=200.0,
    )
    telemetry.record_turn(
        turn_id="t2",
        final_state="failed",
        completion_rounds=1,
        tool_calls=0,
        duration_ms=50.0,
    )

    summary = telemetry.summary()
    assert summary.turns == 2
    assert summary.failed_turns == 1
    assert len(summary.completion_calls) == 1
    assert summary.tool_calls[0].tool_name == "get_pending_expenses"

    log_path = tmp_path / "proc123.jsonl"
    assert log_path.exists()
    lines = log_path.read_text().strip().splitlines()
    events = [json.loads(line)["event"] for line in lines]
    assert events == ["completion_call", "tool_call", "turn", "turn"]


def test_tool_result_summary_is_truncated(tmp_path: Path):
    telemetry = Telemetry(TelemetryConfig(enabled=True, log_dir=str(tmp_path)))
    telemetry.record_tool_call("t1", "get_all_expenses", {}, 1.0, False, "x" * 1000)
    assert len(telemetry.summary().tool_calls[0].result_summary) == 200


def test_telemetry_disabled_no_log(tmp_path: Path):
    config = TelemetryConfig(enabled=False, log_dir=str(tmp_path))
    telemetry = Telemetry(config, session_id="proc456")
    telemetry.record_completion(
        turn_id="t1",
        model="llama3.1",
        round=1,
        prompt_tokens=1,
        completion_tokens=1,
        latency_ms=1.0,
    )
    log_path = tmp_path / "proc456.jsonl"
    assert not log_path.exists()
    assert telemetry.summary_dict()["turns"] == 0


def test_unwritable_log_does_not_raise(tmp_path: Path):
    # A directory where the JSONL file should be makes every write fail.
    (tmp_path / "proc789.jsonl").mkdir()
    telemetry = Telemetry(TelemetryConfig(enabled=True, log_dir=str(tmp_path)), session_id="proc789")

    telemetry.record_turn("t1", "done", 1, 0, 10.0)
    telemetry.record_tool_call("t1", "get_categories", {}, 1.0, False, "[]")

    summary = telemetry.summary()
    assert summary.turns == 1
    assert len(summary.tool_calls) == 1
