"""MCP tool client: one lazily-established, self-healing tool server connection.

Connection states:
- UNCONNECTED: no live connection (initial, or dropped after a failure)
- CONNECTED: a connection is open and reused by every caller
- DISPOSED: terminal; every call raises McpClientDisposedError

A failed tool call drops the connection and the cached tool catalog,
reconnects once and retries that call. A second failure is unrecoverable.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any

from draftstream.llm.models import LlmToolDefinition
from draftstream.mcp.models import (
    Connector,
    McpClientDisposedError,
    McpConnection,
    McpToolClientError,
    McpToolResult,
)

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    DISPOSED = "disposed"


def _to_tool_definition(tool: dict[str, Any]) -> LlmToolDefinition:
    schema = tool.get("inputSchema") or {}
    return LlmToolDefinition(
        name=str(tool["name"]),
        description=str(tool.get("description") or ""),
        parameters_schema=schema if isinstance(schema, dict) else {},
    )


def _parse_arguments(arguments_json: str) -> dict[str, Any]:
    if not arguments_json or not arguments_json.strip():
        return {}
    parsed = json.loads(arguments_json)
    if not isinstance(parsed, dict):
        raise ValueError("tool arguments must be a JSON object")
    return parsed


class McpToolClient:
    """Entry point for tool listing and invocation against a single MCP server."""

    def __init__(self, connector: Connector, *, server_name: str = "notion") -> None:
        self._connector = connector
        self._server_name = server_name
        self._lock = asyncio.Lock()
        self._connection: McpConnection | None = None
        self._tool_definitions: list[LlmToolDefinition] | None = None
        self._disposed = False

    @property
    def state(self) -> ConnectionState:
        if self._disposed:
            return ConnectionState.DISPOSED
        if self._connection is not None:
            return ConnectionState.CONNECTED
        return ConnectionState.UNCONNECTED

    @property
    def cached_tool_definitions(self) -> list[LlmToolDefinition] | None:
        return self._tool_definitions

    async def get_tool_definitions(self) -> list[LlmToolDefinition]:
        self._check_disposed()
        if self._tool_definitions is not None:
            return self._tool_definitions

        connection = await self._ensure_connected()
        try:
            tools = await connection.list_tools()
        except Exception as exc:
            logger.error("Failed to retrieve tool definitions from %s MCP server", self._server_name, exc_info=True)
            raise McpToolClientError(
                f"Failed to retrieve tool definitions from {self._server_name} MCP server"
            ) from exc

        definitions = [_to_tool_definition(t) for t in tools if t.get("name")]
        self._tool_definitions = definitions
        logger.info("Retrieved %d tool definitions from %s MCP server", len(definitions), self._server_name)
        return definitions

    async def call_tool(self, name: str, arguments_json: str) -> McpToolResult:
        self._check_disposed()

        try:
            arguments = _parse_arguments(arguments_json)
        except ValueError as exc:
            # The model produced bad arguments; report back instead of reconnecting.
            logger.warning("Invalid arguments for MCP tool '%s': %s", name, exc)
            return McpToolResult(content=f"Invalid arguments for tool '{name}': {exc}", is_error=True)

        connection: McpConnection | None = None
        try:
            connection = await self._ensure_connected()
            return await connection.call_tool(name, arguments)
        except McpClientDisposedError:
            raise
        except Exception:
            logger.warning("MCP tool call '%s' failed, attempting reconnection", name, exc_info=True)

        await self._reset_connection(connection)

        try:
            connection = await self._ensure_connected()
            return await connection.call_tool(name, arguments)
        except McpClientDisposedError:
            raise
        except Exception as retry_exc:
            logger.error("MCP tool call '%s' failed after reconnection attempt", name, exc_info=True)
            await self._reset_connection(connection)
            raise McpToolClientError(
                f"Failed to invoke MCP tool '{name}' on {self._server_name} MCP server after reconnection attempt"
            ) from retry_exc

    async def dispose(self) -> None:
        async with self._lock:
            if self._disposed:
                return
            self._disposed = True
            connection, self._connection = self._connection, None
            self._tool_definitions = None

        if connection is not None:
            await self._close_quietly(connection)
        logger.info("%s MCP client disposed", self._server_name)

    # ---------------------------------------------------------------------
    # Connection lifecycle
    # ---------------------------------------------------------------------

    def _check_disposed(self) -> None:
        if self._disposed:
            raise McpClientDisposedError(f"{self._server_name} MCP client has been disposed")

    async def _ensure_connected(self) -> McpConnection:
        self._check_disposed()
        if self._connection is not None:
            return self._connection

        async with self._lock:
            self._check_disposed()
            if self._connection is not None:
                return self._connection

            logger.info("Connecting to %s MCP server...", self._server_name)
            try:
                self._connection = await self._connector()
            except Exception as exc:
                logger.error("Failed to establish connection to %s MCP server", self._server_name, exc_info=True)
                raise McpToolClientError(
                    f"Failed to establish connection to {self._server_name} MCP server"
                ) from exc
            return self._connection

    async def _reset_connection(self, failed: McpConnection | None) -> None:
        async with self._lock:
            self._tool_definitions = None
            # Nothing to drop if connecting failed, or another caller already replaced it.
            if failed is None or self._connection is not failed:
                return
            connection, self._connection = self._connection, None

        if connection is not None:
            await self._close_quietly(connection)

    async def _close_quietly(self, connection: McpConnection) -> None:
        try:
            await connection.close()
        except Exception:
            logger.warning("Error closing %s MCP connection", self._server_name, exc_info=True)
