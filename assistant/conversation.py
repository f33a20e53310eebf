"""Conversation assembly - transcript plus new message into backend messages."""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable

from assistant.messages import Message
from prompts.template_engine import PromptTemplateEngine


SYSTEM_TEMPLATE = "assistant.system.md"


class Speaker(str, Enum):
    USER = "User"
    ASSISTANT = "Assistant"


@dataclass(frozen=True)
class Turn:
    """One prior message of the conversation, tagged by speaker."""
    speaker: Speaker
    text: str

    @classmethod
    def parse(cls, raw: str) -> "Turn | None":
        """Parse the ``"User: ..."`` / ``"Assistant: ..."`` wire form; None if untagged."""
        if not isinstance(raw, str):
            return None
        for speaker in Speaker:
            prefix = f"{speaker.value}:"
            if raw.startswith(prefix):
                return cls(speaker, raw[len(prefix):].strip())
        return None

    def to_wire(self) -> str:
        return f"{self.speaker.value}: {self.text}"


def parse_transcript(lines: Iterable[str]) -> list[Turn]:
    """Parse wire-form history, silently dropping untagged entries."""
    turns = []
    for line in lines:
        turn = Turn.parse(line)
        if turn is not None:
            turns.append(turn)
    return turns


def build_system_prompt(profile: str = "default", today: date | None = None) -> str:
    engine = PromptTemplateEngine(profile=profile)
    today = today or date.today()
    return engine.render(SYSTEM_TEMPLATE, {"today": today.isoformat()})


def assemble_messages(
    transcript: Iterable["Turn | str"],
    user_message: str,
    system_prompt: str,
) -> list[Message]:
    """
    Build the message sequence for one request.

    System preamble first, then the transcript in order, then the new user
    message. Entries that are neither a Turn nor a tagged string are dropped.
    Returns a new list on every call.
    """
    messages = [Message.system(system_prompt)]
    for entry in transcript:
        turn = entry if isinstance(entry, Turn) else Turn.parse(entry)
        if turn is None:
            continue
        if turn.speaker == Speaker.USER:
            messages.append(Message.user(turn.text))
        else:
            messages.append(Message.assistant(turn.text))
    messages.append(Message.user(user_message))
    return messages
