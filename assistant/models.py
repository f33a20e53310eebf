"""Completion backends - direct HTTP communication with Ollama and Azure OpenAI."""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, TypeVar

import aiohttp
from assistant.config import AssistantConfig
from assistant.exceptions import BackendConnectionError, BackendModelError, ConfigError
from assistant.messages import Completion, Message, Role, ToolCall


T = TypeVar("T")


class CompletionBackend(ABC):
    """Accepts messages plus optional tool specs, returns text or tool calls."""

    model_name: str = ""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
    ) -> Completion:
        ...


class HttpCompletionBackend(CompletionBackend):
    """Shared retry and timeout handling for HTTP backends."""

    provider_label = "backend"

    def __init__(
        self,
        base_url: str,
        model_name: str,
        temperature: float = 0.7,
        max_tokens: int = 800,
        connect_timeout: float = 5.0,
        read_timeout: float = 120.0,
        max_retries: int = 3,
    ):
        if not base_url.startswith(("http://", "https://")):
            raise ConfigError(f"Invalid {self.provider_label} endpoint: {base_url!r}")
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.max_retries = max_retries

    def _timeout(self) -> aiohttp.ClientTimeout:
        """Build a client timeout configuration from settings."""
        return aiohttp.ClientTimeout(
            total=None,
            connect=self.connect_timeout,
            sock_connect=self.connect_timeout,
            sock_read=self.read_timeout,
        )

    async def _with_retry(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run an async operation with exponential backoff retries."""
        delay = 1.0
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                return await func()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                if attempt >= self.max_retries:
                    break
                await asyncio.sleep(delay)
                delay *= 2

        raise BackendConnectionError(self._connection_error_message(operation, last_error))

    def _connection_error_message(self, operation: str, error: Exception | None) -> str:
        """Create a user-friendly connection error message."""
        details = f"{error}" if error else "unknown error"
        return (
            f"Cannot connect to {self.provider_label} at {self.base_url} during {operation} "
            f"(after {self.max_retries} attempt(s)): {details}"
        )


class OllamaClient(HttpCompletionBackend):
    """Async client for the Ollama /api/chat endpoint with native tool calling."""

    provider_label = "Ollama"

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
    ) -> Completion:
        """Non-streaming chat round. POST /api/chat"""
        payload = {
            "model": self.model_name,
            "messages": [self.to_wire(m) for m in messages],
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }
        if tools:
            payload["tools"] = tools

        async def _request() -> dict:
            async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                async with session.post(
                    f"{self.base_url}/api/chat",
                    json=payload,
                ) as resp:
                    if resp.status == 404:
                        raise BackendModelError(
                            f"Model '{self.model_name}' not found. Pull it with: ollama pull {self.model_name}"
                        )
                    if resp.status != 200:
                        body = await resp.text()
                        raise BackendConnectionError(
                            f"Ollama chat failed (HTTP {resp.status}): {body}"
                        )
                    return await resp.json()

        data = await self._with_retry("chat", _request)
        return self.parse_response(data)

    @staticmethod
    def to_wire(message: Message) -> dict:
        wire = {"role": message.role.value, "content": message.content}
        if message.role == Role.ASSISTANT and message.tool_calls:
            wire["tool_calls"] = [
                {"function": {"name": tc.name, "arguments": tc.args}}
                for tc in message.tool_calls
            ]
        if message.role == Role.TOOL and message.tool_name:
            wire["tool_name"] = message.tool_name
        return wire

    @staticmethod
    def parse_response(data: dict) -> Completion:
        message = data.get("message") or {}
        tool_calls = []
        for idx, raw in enumerate(message.get("tool_calls") or []):
            function = raw.get("function") or {}
            args, error = decode_arguments(function.get("arguments"))
            tool_calls.append(ToolCall(
                name=str(function.get("name", "")),
                args=args,
                call_id=raw.get("id") or f"call_{idx}",
                parse_error=error,
            ))

        return Completion(
            text=message.get("content") or "",
            tool_calls=tool_calls,
            finish_reason="tool_calls" if tool_calls else data.get("done_reason") or "stop",
            prompt_tokens=int(data.get("prompt_eval_count") or 0),
            completion_tokens=int(data.get("eval_count") or 0),
        )


class AzureOpenAIClient(HttpCompletionBackend):
    """Async client for an Azure OpenAI chat completions deployment."""

    provider_label = "Azure OpenAI"

    def __init__(self, base_url: str, model_name: str, api_key: str, api_version: str, **kwargs):
        super().__init__(base_url, model_name, **kwargs)
        self.api_key = api_key
        self.api_version = api_version

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
    ) -> Completion:
        """One chat completions round against the configured deployment."""
        payload = {
            "messages": [self.to_wire(m) for m in messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        url = f"{self.base_url}/openai/deployments/{self.model_name}/chat/completions"

        async def _request() -> dict:
            async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                async with session.post(
                    url,
                    params={"api-version": self.api_version},
                    headers={"api-key": self.api_key},
                    json=payload,
                ) as resp:
                    if resp.status == 404:
                        raise BackendModelError(
                            f"Deployment '{self.model_name}' not found at {self.base_url}"
                        )
                    if resp.status != 200:
                        body = await resp.text()
                        raise BackendConnectionError(
                            f"Azure OpenAI chat failed (HTTP {resp.status}): {body}"
                        )
                    return await resp.json()

        data = await self._with_retry("chat completions", _request)
        return self.parse_response(data)

    @staticmethod
    def to_wire(message: Message) -> dict:
        if message.role == Role.TOOL:
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content,
            }
        if message.role == Role.ASSISTANT and message.tool_calls:
            return {
                "role": "assistant",
                "content": message.content or None,
                "tool_calls": [
                    {
                        "id": tc.call_id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.args)},
                    }
                    for tc in message.tool_calls
                ],
            }
        return {"role": message.role.value, "content": message.content}

    @staticmethod
    def parse_response(data: dict) -> Completion:
        choices = data.get("choices") or []
        if not choices:
            raise BackendConnectionError("Azure OpenAI returned no choices")
        choice = choices[0]
        message = choice.get("message") or {}

        tool_calls = []
        for idx, raw in enumerate(message.get("tool_calls") or []):
            if raw.get("type", "function") != "function":
                continue
            function = raw.get("function") or {}
            args, error = decode_arguments(function.get("arguments"))
            tool_calls.append(ToolCall(
                name=str(function.get("name", "")),
                args=args,
                call_id=raw.get("id") or f"call_{idx}",
                parse_error=error,
            ))

        usage = data.get("usage") or {}
        return Completion(
            text=message.get("content") or "",
            tool_calls=tool_calls,
            finish_reason="tool_calls" if tool_calls else choice.get("finish_reason") or "stop",
            prompt_tokens=int(usage.get("prompt_tokens") or 0),
            completion_tokens=int(usage.get("completion_tokens") or 0),
        )


def decode_arguments(raw: object) -> tuple[dict, str | None]:
    """Turn wire-format tool arguments into a dict, reporting undecodable input."""
    if raw is None or raw == "":
        return {}, None
    if isinstance(raw, dict):
        return raw, None
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            return {}, f"arguments are not valid JSON ({e.msg})"
        if isinstance(decoded, dict):
            return decoded, None
    return {}, "arguments must be a JSON object"


def create_backend(config: AssistantConfig) -> CompletionBackend:
    """Build the completion client selected by ``completion.provider``."""
    completion = config.completion
    common = dict(
        temperature=completion.temperature,
        max_tokens=completion.max_tokens,
        connect_timeout=config.backend.connect_timeout,
        read_timeout=config.backend.read_timeout,
        max_retries=config.backend.max_retries,
    )
    if completion.provider == "ollama":
        return OllamaClient(completion.endpoint, completion.model_name, **common)
    if completion.provider == "azure_openai":
        return AzureOpenAIClient(
            completion.endpoint,
            completion.model_name,
            api_key=completion.api_key,
            api_version=completion.api_version,
            **common,
        )
    raise ConfigError(f"Unknown completion provider: {completion.provider}")
