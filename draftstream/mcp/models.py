"""MCP tool results, the connection contract, and the MCP error hierarchy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from draftstream.llm.models import LlmToolDefinition


@dataclass(frozen=True)
class McpToolResult:
    content: str
    is_error: bool = False


class McpConnection(Protocol):
    """A live session with an MCP tool server."""

    async def list_tools(self) -> list[dict[str, Any]]: ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> McpToolResult: ...

    async def close(self) -> None: ...


Connector = Callable[[], Awaitable[McpConnection]]


class ToolClient(Protocol):
    """What workflows, the schema cache and fallback storage need from MCP."""

    async def get_tool_definitions(self) -> list[LlmToolDefinition]: ...

    async def call_tool(self, name: str, arguments_json: str) -> McpToolResult: ...


class McpError(RuntimeError):
    """Base class for MCP failures."""


class McpTransportError(McpError):
    """The server process is gone, timed out, or produced an unusable stream."""


class McpRpcError(McpError):
    """The server answered a request with a JSON-RPC error object."""

    def __init__(self, req_id: int, error: Any) -> None:
        self.req_id = req_id
        self.error = error
        super().__init__(f"MCP error for {req_id}: {error}")


class McpToolClientError(McpError):
    """Unrecoverable tool client failure (connect, list, or call after one retry)."""


class McpClientDisposedError(McpToolClientError):
    """The tool client was disposed; no further calls are possible."""
