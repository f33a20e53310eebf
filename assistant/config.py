"""Configuration loading and validation."""

import json
import os
from dataclasses import dataclass, field
from assistant.exceptions import ConfigError


PROVIDERS = ("ollama", "azure_openai")


@dataclass
class CompletionConfig:
    """Configuration for the chat completion backend."""
    provider: str = "ollama"  # "ollama" or "azure_openai"
    endpoint: str = ""
    model_name: str = ""  # Ollama model or Azure deployment name
    api_key: str = ""
    api_version: str = "2024-06-01"
    temperature: float = 0.7
    max_tokens: int = 800

    def missing_settings(self) -> list[str]:
        """Names of the settings that must be filled in before chat works."""
        missing = []
        if not self.endpoint.strip():
            missing.append("endpoint")
        if not self.model_name.strip():
            missing.append("model_name")
        if self.provider == "azure_openai" and not self.api_key.strip():
            missing.append("api_key")
        return missing


@dataclass
class BackendSettings:
    """Configuration for backend connectivity, retries and round timeouts."""
    connect_timeout: float = 5.0
    read_timeout: float = 120.0
    max_retries: int = 3
    round_timeout: float = 60.0


@dataclass
class ToolExecutionConfig:
    """Configuration for tool execution behavior."""
    default_timeout: float = 30.0
    timeouts: dict[str, float] = field(default_factory=dict)
    parallel: bool = True


@dataclass
class StoreConfig:
    """Configuration for the expense database."""
    db_path: str = "./data/expenses.db"
    seed_demo_data: bool = True


@dataclass
class TelemetryConfig:
    """Configuration for telemetry and metrics logging."""
    enabled: bool = False
    log_dir: str = "./data/metrics"
    otel_enabled: bool = False
    otel_endpoint: str | None = None
    otel_service_name: str = "expense-assistant"


@dataclass
class AssistantConfig:
    """Complete assistant configuration."""
    completion: CompletionConfig = field(default_factory=CompletionConfig)
    backend: BackendSettings = field(default_factory=BackendSettings)
    tool_execution: ToolExecutionConfig = field(default_factory=ToolExecutionConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    user_id: int = 1
    max_tool_rounds: int = 1
    prompt_profile: str = "default"
    data_dir: str = "data"
    log_dir: str = "data/logs"


def load_config(config_path: str = "config.json") -> AssistantConfig:
    """Load configuration from JSON file with defaults and env overrides."""
    raw: dict = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigError(f"Failed to load config from {config_path}: {e}")
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file {config_path} must contain a JSON object")

    data_dir = raw.get("data_dir", "data")
    if not isinstance(data_dir, str) or not data_dir.strip():
        raise ConfigError("data_dir must be a non-empty string")

    completion = _load_completion_settings(raw.get("completion", {}))
    _apply_completion_env(completion)

    backend = _load_backend_settings(raw.get("backend", {}))
    tool_execution = _load_tool_execution_settings(raw.get("tool_execution", {}))

    store = _load_store_settings(raw.get("store", {}), data_dir)
    env_db_path = os.getenv("EXPENSE_DB_PATH")
    if env_db_path:
        store.db_path = env_db_path

    telemetry = _load_telemetry_settings(raw.get("telemetry", {}), data_dir)

    user_id = _coerce_int(raw.get("user_id", 1), "user_id", 1)
    max_tool_rounds = _coerce_int(raw.get("max_tool_rounds", 1), "max_tool_rounds", 1)

    prompt_profile = raw.get("prompt_profile", "default")
    if not isinstance(prompt_profile, str) or not prompt_profile.strip():
        raise ConfigError("prompt_profile must be a non-empty string")

    # Ensure data directories exist
    log_dir = raw.get("log_dir", os.path.join(data_dir, "logs"))
    dirs = [data_dir, log_dir]
    if telemetry.enabled:
        dirs.append(telemetry.log_dir)
    for d in dirs:
        os.makedirs(d, exist_ok=True)

    return AssistantConfig(
        completion=completion,
        backend=backend,
        tool_execution=tool_execution,
        store=store,
        telemetry=telemetry,
        user_id=user_id,
        max_tool_rounds=max_tool_rounds,
        prompt_profile=prompt_profile.strip(),
        data_dir=data_dir,
        log_dir=log_dir,
    )


def _load_completion_settings(raw: dict) -> CompletionConfig:
    """Parse and validate completion backend settings."""
    if not isinstance(raw, dict):
        raise ConfigError("completion must be an object")

    provider = raw.get("provider", "ollama")
    if provider not in PROVIDERS:
        raise ConfigError("completion.provider must be 'ollama' or 'azure_openai'")

    strings = {}
    for key in ("endpoint", "model_name", "api_key"):
        value = raw.get(key, "")
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise ConfigError(f"completion.{key} must be a string")
        strings[key] = value.strip()

    api_version = raw.get("api_version", "2024-06-01")
    if not isinstance(api_version, str) or not api_version.strip():
        raise ConfigError("completion.api_version must be a non-empty string")

    temperature = _coerce_float(raw.get("temperature", 0.7), "completion.temperature", 0.0)
    max_tokens = _coerce_int(raw.get("max_tokens", 800), "completion.max_tokens", 1)

    return CompletionConfig(
        provider=provider,
        endpoint=strings["endpoint"],
        model_name=strings["model_name"],
        api_key=strings["api_key"],
        api_version=api_version.strip(),
        temperature=temperature,
        max_tokens=max_tokens,
    )


def _apply_completion_env(completion: CompletionConfig) -> None:
    """Let deployment environments fill in endpoint and credentials."""
    if completion.provider == "ollama":
        env_base_url = os.getenv("OLLAMA_BASE_URL")
        if env_base_url:
            completion.endpoint = env_base_url
        return

    overrides = {
        "endpoint": os.getenv("AZURE_OPENAI_ENDPOINT"),
        "model_name": os.getenv("AZURE_OPENAI_DEPLOYMENT"),
        "api_key": os.getenv("AZURE_OPENAI_API_KEY"),
    }
    for key, value in overrides.items():
        if value:
            setattr(completion, key, value.strip())


def _load_backend_settings(raw: dict) -> BackendSettings:
    """Parse and validate backend connectivity settings."""
    if not isinstance(raw, dict):
        raise ConfigError("backend must be an object")
    connect_timeout = _coerce_float(raw.get("connect_timeout", 5.0), "backend.connect_timeout", 0.1)
    read_timeout = _coerce_float(raw.get("read_timeout", 120.0), "backend.read_timeout", 0.1)
    max_retries = _coerce_int(raw.get("max_retries", 3), "backend.max_retries", 1)
    round_timeout = _coerce_float(raw.get("round_timeout", 60.0), "backend.round_timeout", 0.1)

    return BackendSettings(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        max_retries=max_retries,
        round_timeout=round_timeout,
    )


def _load_tool_execution_settings(raw: dict) -> ToolExecutionConfig:
    """Parse and validate tool execution settings."""
    if not isinstance(raw, dict):
        raise ConfigError("tool_execution must be an object")
    default_timeout = _coerce_float(
        raw.get("default_timeout", 30.0),
        "tool_execution.default_timeout",
        0.1,
    )

    timeouts_raw = raw.get("timeouts", {})
    if timeouts_raw is None:
        timeouts_raw = {}
    if not isinstance(timeouts_raw, dict):
        raise ConfigError("tool_execution.timeouts must be an object")

    timeouts: dict[str, float] = {}
    for key, value in timeouts_raw.items():
        if not isinstance(key, str):
            raise ConfigError("tool_execution.timeouts keys must be strings")
        timeouts[key] = _coerce_float(value, f"tool_execution.timeouts.{key}", 0.1)

    parallel = raw.get("parallel", True)
    if not isinstance(parallel, bool):
        raise ConfigError("tool_execution.parallel must be a boolean")

    return ToolExecutionConfig(
        default_timeout=default_timeout,
        timeouts=timeouts,
        parallel=parallel,
    )


def _load_store_settings(raw: dict, data_dir: str) -> StoreConfig:
    """Parse and validate expense database settings."""
    if not isinstance(raw, dict):
        raise ConfigError("store must be an object")
    db_path = raw.get("db_path", os.path.join(data_dir, "expenses.db"))
    if not isinstance(db_path, str) or not db_path.strip():
        raise ConfigError("store.db_path must be a non-empty string")

    seed_demo_data = raw.get("seed_demo_data", True)
    if not isinstance(seed_demo_data, bool):
        raise ConfigError("store.seed_demo_data must be a boolean")

    return StoreConfig(db_path=db_path, seed_demo_data=seed_demo_data)


def _load_telemetry_settings(raw: dict, data_dir: str) -> TelemetryConfig:
    """Parse and validate telemetry settings."""
    if not isinstance(raw, dict):
        raise ConfigError("telemetry must be an object")
    enabled = raw.get("enabled", False)
    if not isinstance(enabled, bool):
        raise ConfigError("telemetry.enabled must be a boolean")

    log_dir = raw.get("log_dir", os.path.join(data_dir, "metrics"))
    if not isinstance(log_dir, str) or not log_dir.strip():
        raise ConfigError("telemetry.log_dir must be a non-empty string")

    otel_enabled = raw.get("otel_enabled", False)
    if not isinstance(otel_enabled, bool):
        raise ConfigError("telemetry.otel_enabled must be a boolean")

    otel_endpoint = raw.get("otel_endpoint")
    if otel_endpoint is not None and (not isinstance(otel_endpoint, str) or not otel_endpoint.strip()):
        raise ConfigError("telemetry.otel_endpoint must be a non-empty string if provided")

    otel_service_name = raw.get("otel_service_name", "expense-assistant")
    if not isinstance(otel_service_name, str) or not otel_service_name.strip():
        raise ConfigError("telemetry.otel_service_name must be a non-empty string")

    return TelemetryConfig(
        enabled=enabled,
        log_dir=log_dir,
        otel_enabled=otel_enabled,
        otel_endpoint=otel_endpoint.strip() if isinstance(otel_endpoint, str) else None,
        otel_service_name=otel_service_name.strip(),
    )


def _coerce_float(value: object, name: str, min_value: float) -> float:
    """Coerce config value to float with basic validation."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number")

    if value < min_value:
        raise ConfigError(f"{name} must be >= {min_value}")
    return value


def _coerce_int(value: object, name: str, min_value: int) -> int:
    """Coerce config value to int with basic validation."""
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer")

    if value < min_value:
        raise ConfigError(f"{name} must be >= {min_value}")
    return value
