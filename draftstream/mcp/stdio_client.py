"""Minimal asyncio MCP stdio client (newline-delimited JSON-RPC).

This module intentionally supports only what DraftStream needs:
- initialize + notifications/initialized
- tools/list
- tools/call
- ping
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

from draftstream.mcp.models import McpRpcError, McpToolResult, McpTransportError

logger = logging.getLogger(__name__)

_LATEST_PROTOCOL_VERSION = "2025-06-18"

# Notion database payloads can be large; asyncio's default line limit is 64 KiB.
_STREAM_LIMIT = 16 * 1024 * 1024


@dataclass
class StdioServerSpec:
    command: str
    args: list[str]
    cwd: str | None = None
    env: dict[str, str] | None = None


def coerce_content_to_text(result: dict[str, Any]) -> str:
    content = result.get("content") or []
    if isinstance(content, list):
        texts: list[str] = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                texts.append(str(block.get("text", "")))
        if texts:
            return "\n".join(t for t in texts if t)

    try:
        return json.dumps(result, default=str)
    except (TypeError, ValueError):
        return str(result)


class McpStdioClient:
    def __init__(self, spec: StdioServerSpec, *, timeout_s: float = 30.0) -> None:
        self._spec = spec
        self._timeout_s = float(timeout_s)
        self._proc: asyncio.subprocess.Process | None = None
        self._stdout_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._stderr_tail: deque[str] = deque(maxlen=50)
        self._write_lock = asyncio.Lock()
        self._id = 0
        self.server_info: dict[str, Any] = {}

    async def __aenter__(self) -> McpStdioClient:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def stderr_tail(self) -> list[str]:
        return list(self._stderr_tail)

    @property
    def is_running(self) -> bool:
        """True while the process is alive and its stdout is still being read."""
        if self._proc is None or self._proc.returncode is not None:
            return False
        return self._stdout_task is not None and not self._stdout_task.done()

    async def start(self) -> None:
        if self._proc is not None:
            return

        logger.debug("Starting MCP stdio server: %s %s", self._spec.command, self._spec.args)
        try:
            self._proc = await asyncio.create_subprocess_exec(
                self._spec.command,
                *list(self._spec.args or []),
                cwd=self._spec.cwd,
                env=self._spec.env,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            raise McpTransportError(f"Failed to start MCP server '{self._spec.command}': {exc}") from exc

        self._stdout_task = asyncio.create_task(self._read_stdout())
        self._stderr_task = asyncio.create_task(self._read_stderr())

    async def close(self) -> None:
        proc = self._proc
        if proc is None:
            return
        self._proc = None

        if proc.returncode is None:
            try:
                if proc.stdin is not None:
                    proc.stdin.close()
                proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), timeout=3.0)
                except asyncio.TimeoutError:
                    proc.kill()
                    await proc.wait()
            except ProcessLookupError:
                pass

        for task in (self._stdout_task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
        self._fail_pending(McpTransportError("MCP client closed"))

    def _fail_pending(self, exc: Exception) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(exc)

    async def _read_stdout(self) -> None:
        proc = self._proc
        assert proc is not None and proc.stdout is not None
        try:
            while True:
                try:
                    line = await proc.stdout.readline()
                except ValueError:
                    logger.warning("MCP stdout line exceeded %d bytes; dropping it", _STREAM_LIMIT)
                    continue
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                try:
                    msg = json.loads(text)
                except json.JSONDecodeError:
                    logger.debug("Failed to parse MCP stdout line: %r", text)
                    continue
                if isinstance(msg, dict):
                    self._handle_message(msg)
        finally:
            stderr = "\n".join(self.stderr_tail[-10:])
            self._fail_pending(McpTransportError(f"MCP server closed its output. stderr_tail:\n{stderr}"))

    def _handle_message(self, msg: dict[str, Any]) -> None:
        # Ignore notifications
        if "id" not in msg:
            return

        fut = self._pending.pop(msg.get("id"), None)
        if fut is None or fut.done():
            return

        if "error" in msg and msg["error"]:
            fut.set_exception(McpRpcError(msg["id"], msg["error"]))
        else:
            fut.set_result(msg.get("result") or {})

    async def _read_stderr(self) -> None:
        proc = self._proc
        assert proc is not None and proc.stderr is not None
        while True:
            try:
                line = await proc.stderr.readline()
            except ValueError:
                continue
            if not line:
                break
            txt = line.decode("utf-8", errors="replace").rstrip("\r\n")
            if txt:
                self._stderr_tail.append(txt)
                logger.debug("mcp(stderr): %s", txt)

    async def _send(self, message: dict[str, Any]) -> None:
        proc = self._proc
        if proc is None or proc.stdin is None or not self.is_running:
            stderr = "\n".join(self.stderr_tail[-10:])
            raise McpTransportError(f"MCP process not running or its output is closed. stderr_tail:\n{stderr}")
        payload = (json.dumps(message, default=str) + "\n").encode("utf-8")
        async with self._write_lock:
            try:
                proc.stdin.write(payload)
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as exc:
                raise McpTransportError(f"MCP process pipe closed: {exc}") from exc

    def _next_id(self) -> int:
        self._id += 1
        return self._id

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout_s: float | None = None,
    ) -> dict[str, Any]:
        req_id = self._next_id()
        msg: dict[str, Any] = {"jsonrpc": "2.0", "id": req_id, "method": method}
        if params is not None:
            msg["params"] = params

        fut: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[req_id] = fut
        try:
            await self._send(msg)
            return await asyncio.wait_for(fut, timeout=timeout_s if timeout_s is not None else self._timeout_s)
        except asyncio.TimeoutError as exc:
            stderr = "\n".join(self.stderr_tail[-10:])
            raise McpTransportError(f"MCP request {req_id} ({method}) timed out. stderr_tail:\n{stderr}") from exc
        finally:
            self._pending.pop(req_id, None)

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        msg: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            msg["params"] = params
        await self._send(msg)

    # ---------------------------------------------------------------------
    # MCP primitives
    # ---------------------------------------------------------------------

    async def initialize(self, *, client_name: str = "draftstream", client_version: str = "1.0.0") -> dict[str, Any]:
        result = await self.request(
            "initialize",
            {
                "protocolVersion": _LATEST_PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": client_name, "version": client_version},
            },
        )
        self.server_info = result.get("serverInfo") or {}
        await self.notify("notifications/initialized")
        return result

    async def ping(self) -> dict[str, Any]:
        return await self.request("ping", None)

    async def list_tools(self) -> list[dict[str, Any]]:
        tools: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            result = await self.request("tools/list", {"cursor": cursor} if cursor else None)
            page = result.get("tools") or []
            if isinstance(page, list):
                tools.extend(t for t in page if isinstance(t, dict))
            cursor = result.get("nextCursor")
            if not cursor:
                return tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> McpToolResult:
        result = await self.request("tools/call", {"name": name, "arguments": arguments or {}})
        return McpToolResult(content=coerce_content_to_text(result), is_error=bool(result.get("isError", False)))


class StdioConnector:
    """Connector that launches a stdio MCP server and completes the handshake."""

    def __init__(
        self,
        spec_factory: Callable[[], StdioServerSpec],
        *,
        timeout_s: float = 30.0,
        client_name: str = "draftstream",
        client_version: str = "1.0.0",
    ) -> None:
        self._spec_factory = spec_factory
        self._timeout_s = timeout_s
        self._client_name = client_name
        self._client_version = client_version

    async def __call__(self) -> McpStdioClient:
        spec = self._spec_factory()
        client = McpStdioClient(spec, timeout_s=self._timeout_s)
        await client.start()
        try:
            await client.initialize(client_name=self._client_name, client_version=self._client_version)
        except BaseException:
            await client.close()
            raise

        logger.info(
            "Connected to MCP server via '%s' (server: %s %s)",
            " ".join([spec.command, *spec.args]),
            client.server_info.get("name", "unknown"),
            client.server_info.get("version", "unknown"),
        )
        return client
