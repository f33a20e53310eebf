"""Message, ToolCall, ToolResult and Completion dataclasses."""

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class ToolCall:
    """Tool invocation requested by the completion backend."""
    name: str
    args: dict = field(default_factory=dict)
    call_id: str | None = None
    parse_error: str | None = None  # set when the arguments were not valid JSON


@dataclass
class ToolResult:
    """Outcome of one tool call, success or error, as text for the model."""
    call: ToolCall
    text: str
    is_error: bool = False
    duration_ms: float = 0.0


@dataclass
class Message:
    """One entry of the message sequence sent to the backend."""
    role: Role
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None
    tool_name: str | None = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str, tool_calls: list[ToolCall] | None = None) -> "Message":
        return cls(Role.ASSISTANT, content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, result: ToolResult) -> "Message":
        return cls(
            Role.TOOL,
            result.text,
            tool_call_id=result.call.call_id,
            tool_name=result.call.name,
        )


@dataclass
class Completion:
    """Response of one completion round."""
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str = "stop"  # "stop" or "tool_calls"
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)
