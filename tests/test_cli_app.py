import tempfile
import unittest
from pathlib import Path

from assistant.config import AssistantConfig, CompletionConfig
from assistant.conversation import Speaker, Turn
from assistant.messages import Completion
from assistant.orchestrator import NOT_CONFIGURED_MESSAGE, ChatOrchestrator
from cli.cli_app import CLIApp
from fakes import FakeBackend, FakeStore


class TestCLIApp(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.log_dir = str(Path(self._tmp.name) / "logs")

    def tearDown(self):
        self._tmp.cleanup()

    async def test_send_extends_transcript(self):
        config = AssistantConfig(
            completion=CompletionConfig(endpoint="http://localhost:11434", model_name="llama3.1"),
            log_dir=self.log_dir,
        )
        backend = FakeBackend([Completion(text="Hello"), Completion(text="Two pending")])
        app = CLIApp(config, ChatOrchestrator(config, FakeStore(), backend=backend))

        self.assertEqual(await app.send("Hi"), "Hello")
        self.assertEqual(await app.send("Pending?"), "Two pending")

        self.assertEqual(app.transcript, [
            Turn(Speaker.USER, "Hi"),
            Turn(Speaker.ASSISTANT, "Hello"),
            Turn(Speaker.USER, "Pending?"),
            Turn(Speaker.ASSISTANT, "Two pending"),
        ])
        second_request = backend.requests[1][0]
        self.assertEqual([m.content for m in second_request[1:]], ["Hi", "Hello", "Pending?"])

    async def test_unconfigured_turn_is_not_recorded(self):
        config = AssistantConfig(log_dir=self.log_dir)
        app = CLIApp(config, ChatOrchestrator(config, FakeStore()))

        self.assertEqual(await app.send("Hi"), NOT_CONFIGURED_MESSAGE)
        self.assertEqual(app.transcript, [])


if __name__ == "__main__":
    unittest.main()
