"""Launch settings for the Notion MCP server (``npx -y @notionhq/notion-mcp-server``)."""

from __future__ import annotations

import logging
import os
from typing import Any

from pydantic import BaseModel

from draftstream.mcp.client import McpToolClient
from draftstream.mcp.models import McpToolClientError
from draftstream.mcp.stdio_client import StdioConnector, StdioServerSpec

logger = logging.getLogger(__name__)


_ESSENTIAL_ENV_KEYS = {
    # POSIX
    "PATH",
    "HOME",
    "LANG",
    "TMPDIR",
    # Windows essentials for subprocesses
    "SystemRoot",
    "ComSpec",
    "PATHEXT",
    "Path",
    "TEMP",
    "TMP",
    "USERNAME",
    "USERPROFILE",
    "APPDATA",
    "LOCALAPPDATA",
}


class NotionSettings(BaseModel):
    """Notion MCP server launch and schema lookup settings."""

    integration_token: str = ""
    command: str = "npx"
    args: list[str] = ["-y", "@notionhq/notion-mcp-server"]
    env_allow: list[str] = []
    request_timeout_s: float = 60.0
    schema_strategy: str = "database"  # "database" | "data_source"


def build_stdio_env(env_allow: list[str] | None, env_overrides: dict[str, Any] | None) -> dict[str, str]:
    # Only OS essentials plus explicit allowlisted variables reach the subprocess.
    # Read os.environ directly: a copy loses Windows case-insensitive lookups.
    full_env = os.environ
    base: dict[str, str] = {}
    for k in _ESSENTIAL_ENV_KEYS:
        v = full_env.get(k)
        if v is not None:
            base[k] = v
    for k in (env_allow or []):
        v = full_env.get(k)
        if v is not None:
            base[str(k)] = v

    for k, v in (env_overrides or {}).items():
        if v is None:
            continue
        base[str(k)] = str(v)
    return base


def build_notion_server_spec(settings: NotionSettings) -> StdioServerSpec:
    if not settings.integration_token.strip():
        raise McpToolClientError(
            "Notion integration_token is not configured. Set DRAFTSTREAM_NOTION__INTEGRATION_TOKEN."
        )
    env = build_stdio_env(settings.env_allow, {"NOTION_TOKEN": settings.integration_token})
    return StdioServerSpec(command=settings.command, args=list(settings.args), env=env)


def create_notion_tool_client(settings: NotionSettings) -> McpToolClient:
    connector = StdioConnector(
        lambda: build_notion_server_spec(settings),
        timeout_s=settings.request_timeout_s,
    )
    return McpToolClient(connector, server_name="notion")
