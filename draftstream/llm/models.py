"""Provider-neutral request/response types for chat completions with tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class LlmToolCall:
    """A single tool invocation requested by the model."""

    id: str
    function_name: str
    arguments_json: str


@dataclass(frozen=True)
class LlmToolDefinition:
    """A tool the model may call, described by a JSON schema."""

    name: str
    description: str
    parameters_schema: dict[str, Any] = field(default_factory=dict)

    def to_openai_tool(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema or {"type": "object", "properties": {}},
            },
        }


@dataclass(frozen=True)
class LlmMessage:
    """One conversation turn.

    ``tool_calls`` is only set on assistant turns; ``tool_call_id`` only on
    ``tool`` turns, linking the result back to the originating call.
    """

    role: str  # "system" | "user" | "assistant" | "tool"
    content: str | None = None
    tool_calls: tuple[LlmToolCall, ...] = ()
    tool_call_id: str | None = None

    @staticmethod
    def system(content: str) -> LlmMessage:
        return LlmMessage(role="system", content=content)

    @staticmethod
    def user(content: str) -> LlmMessage:
        return LlmMessage(role="user", content=content)

    @staticmethod
    def assistant(content: str | None, tool_calls: list[LlmToolCall] | tuple[LlmToolCall, ...] = ()) -> LlmMessage:
        return LlmMessage(role="assistant", content=content, tool_calls=tuple(tool_calls))

    @staticmethod
    def tool(content: str, tool_call_id: str) -> LlmMessage:
        return LlmMessage(role="tool", content=content, tool_call_id=tool_call_id)


@dataclass(frozen=True)
class LlmRequest:
    messages: list[LlmMessage]
    tools: list[LlmToolDefinition] | None = None
    model_override: str | None = None


@dataclass(frozen=True)
class LlmResponse:
    content: str | None
    tool_calls: list[LlmToolCall]
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
