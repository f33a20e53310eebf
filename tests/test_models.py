import json
import unittest
from unittest import mock

import aiohttp

from assistant.config import AssistantConfig, CompletionConfig
from assistant.exceptions import BackendConnectionError, ConfigError
from assistant.messages import Message, ToolCall, ToolResult
from assistant.models import (
    AzureOpenAIClient,
    OllamaClient,
    create_backend,
    decode_arguments,
)


class TestRetry(unittest.IsolatedAsyncioTestCase):
    async def test_with_retry_succeeds_after_failures(self):
        client = OllamaClient("http://localhost:11434", "llama3.1", max_retries=3)
        attempts = 0

        async def operation():
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise aiohttp.ClientError("boom")
            return "ok"

        with mock.patch("assistant.models.asyncio.sleep", new=mock.AsyncMock()) as sleep_mock:
            result = await client._with_retry("test", operation)

        self.assertEqual(result, "ok")
        self.assertEqual(attempts, 3)
        self.assertEqual(sleep_mock.call_count, 2)
        self.assertEqual([c.args[0] for c in sleep_mock.call_args_list], [1.0, 2.0])

    async def test_with_retry_raises_after_exhausted(self):
        client = AzureOpenAIClient(
            "https://example.openai.azure.com", "gpt-4o", api_key="k", api_version="2024-06-01",
            max_retries=2,
        )

        async def operation():
            raise aiohttp.ClientError("boom")

        with mock.patch("assistant.models.asyncio.sleep", new=mock.AsyncMock()):
            with self.assertRaises(BackendConnectionError) as ctx:
                await client._with_retry("chat completions", operation)
        self.assertIn("Azure OpenAI", str(ctx.exception))
        self.assertIn("2 attempt(s)", str(ctx.exception))

    def test_rejects_non_http_endpoint(self):
        with self.assertRaises(ConfigError):
            OllamaClient("localhost:11434", "llama3.1")


class TestOllamaWire(unittest.TestCase):
    def test_parse_text_response(self):
        completion = OllamaClient.parse_response({
            "message": {"role": "assistant", "content": "Hello"},
            "done_reason": "stop",
            "prompt_eval_count": 12,
            "eval_count": 3,
        })
        self.assertEqual(completion.text, "Hello")
        self.assertFalse(completion.wants_tools)
        self.assertEqual(completion.finish_reason, "stop")
        self.assertEqual((completion.prompt_tokens, completion.completion_tokens), (12, 3))

    def test_parse_tool_calls(self):
        completion = OllamaClient.parse_response({
            "message": {
                "role": "assistant",
                "content": "",
                "tool_calls": [
                    {"function": {"name": "get_expenses_by_status", "arguments": {"status": "Approved"}}},
                    {"function": {"name": "get_categories", "arguments": {}}},
                ],
            },
        })
        self.assertEqual(completion.finish_reason, "tool_calls")
        self.assertEqual([c.name for c in completion.tool_calls],
                         ["get_expenses_by_status", "get_categories"])
        self.assertEqual(completion.tool_calls[0].args, {"status": "Approved"})
        self.assertEqual(completion.tool_calls[1].call_id, "call_1")

    def test_to_wire_tool_messages(self):
        call = ToolCall("get_categories", {}, call_id="call_0")
        assistant = OllamaClient.to_wire(Message.assistant("", [call]))
        self.assertEqual(assistant["tool_calls"], [{"function": {"name": "get_categories", "arguments": {}}}])

        tool = OllamaClient.to_wire(Message.tool(ToolResult(call, "[]")))
        self.assertEqual(tool, {"role": "tool", "content": "[]", "tool_name": "get_categories"})


class TestAzureWire(unittest.TestCase):
    def test_parse_tool_calls_with_string_arguments(self):
        completion = AzureOpenAIClient.parse_response({
            "choices": [{
                "finish_reason": "tool_calls",
                "message": {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [{
                        "id": "call_abc",
                        "type": "function",
                        "function": {"name": "approve_expense", "arguments": "{\"expenseId\": 3}"},
                    }],
                },
            }],
            "usage": {"prompt_tokens": 100, "completion_tokens": 8},
        })
        self.assertEqual(completion.text, "")
        self.assertEqual(completion.tool_calls[0].call_id, "call_abc")
        self.assertEqual(completion.tool_calls[0].args, {"expenseId": 3})
        self.assertIsNone(completion.tool_calls[0].parse_error)
        self.assertEqual(completion.prompt_tokens, 100)

    def test_parse_marks_bad_arguments(self):
        completion = AzureOpenAIClient.parse_response({
            "choices": [{"message": {"tool_calls": [{
                "id": "call_1",
                "type": "function",
                "function": {"name": "create_expense", "arguments": "{amount: 5"},
            }]}}],
        })
        self.assertIn("not valid JSON", completion.tool_calls[0].parse_error)

    def test_parse_without_choices_raises(self):
        with self.assertRaises(BackendConnectionError):
            AzureOpenAIClient.parse_response({"choices": []})

    def test_to_wire_round_trip_messages(self):
        call = ToolCall("approve_expense", {"expenseId": 3}, call_id="call_abc")
        assistant = AzureOpenAIClient.to_wire(Message.assistant("", [call]))
        self.assertIsNone(assistant["content"])
        self.assertEqual(json.loads(assistant["tool_calls"][0]["function"]["arguments"]), {"expenseId": 3})

        tool = AzureOpenAIClient.to_wire(Message.tool(ToolResult(call, "{\"ok\": true}")))
        self.assertEqual(tool, {"role": "tool", "tool_call_id": "call_abc", "content": "{\"ok\": true}"})

        self.assertEqual(AzureOpenAIClient.to_wire(Message.user("hi")), {"role": "user", "content": "hi"})


class TestHelpers(unittest.TestCase):
    def test_decode_arguments(self):
        self.assertEqual(decode_arguments(None), ({}, None))
        self.assertEqual(decode_arguments(""), ({}, None))
        self.assertEqual(decode_arguments({"a": 1}), ({"a": 1}, None))
        self.assertEqual(decode_arguments("{\"a\": 1}"), ({"a": 1}, None))
        self.assertEqual(decode_arguments("[1, 2]"), ({}, "arguments must be a JSON object"))

    def test_create_backend_selects_provider(self):
        config = AssistantConfig(completion=CompletionConfig(
            endpoint="http://localhost:11434", model_name="llama3.1",
        ))
        self.assertIsInstance(create_backend(config), OllamaClient)

        config = AssistantConfig(completion=CompletionConfig(
            provider="azure_openai",
            endpoint="https://example.openai.azure.com/",
            model_name="gpt-4o",
            api_key="k",
        ))
        backend = create_backend(config)
        self.assertIsInstance(backend, AzureOpenAIClient)
        self.assertEqual(backend.base_url, "https://example.openai.azure.com")


if __name__ == "__main__":
    unittest.main()
