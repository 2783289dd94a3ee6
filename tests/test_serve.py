"""Tests for settings loading and the FastAPI host."""

from __future__ import annotations

from fastapi.testclient import TestClient

from draftstream.config import Settings
from draftstream.mcp.client import McpToolClient
from draftstream.serve import create_app
from draftstream.workflows.config import WorkflowConfig


def test_settings_from_nested_environment(monkeypatch):
    monkeypatch.setenv("DRAFTSTREAM_OPENROUTER__API_KEY", "sk-or-test")
    monkeypatch.setenv("DRAFTSTREAM_NOTION__SCHEMA_STRATEGY", "data_source")
    monkeypatch.setenv("DRAFTSTREAM_TELEGRAM__GROUP_ID", "-100123")
    monkeypatch.setenv("DRAFTSTREAM_TELEGRAM__TOPIC_MAPPINGS", '{"12": "notes"}')
    monkeypatch.setenv("DRAFTSTREAM_FALLBACK__GENERAL_DATABASE_ID", "db-inbox")
    monkeypatch.setenv("DRAFTSTREAM_WORKFLOWS", '{"notes": {"database_id": "db-notes", "model_override": "x/y"}}')

    settings = Settings(_env_file=None)

    assert settings.openrouter.api_key == "sk-or-test"
    assert settings.notion.schema_strategy == "data_source"
    assert settings.telegram.group_id == -100123
    assert settings.telegram.topic_mappings == {12: "notes"}
    assert settings.fallback.general_database_id == "db-inbox"
    assert settings.workflows == {"notes": WorkflowConfig(database_id="db-notes", model_override="x/y")}


def test_settings_defaults():
    settings = Settings(_env_file=None)

    assert settings.workflows == {}
    assert settings.notion.schema_strategy == "database"
    assert settings.fallback.general_database_id == ""
    assert settings.telegram.bot_token == ""


async def _no_connection():
    raise AssertionError("health checks must not connect to the MCP server")


def test_health_reports_workflows_and_mcp_state():
    settings = Settings(
        _env_file=None,
        workflows={"notes": WorkflowConfig(database_id="db-notes"), "tasks": WorkflowConfig(database_id="db-tasks")},
    )
    tool_client = McpToolClient(_no_connection)
    app = create_app(settings, tool_client=tool_client)

    with TestClient(app) as client:
        resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["workflows"] == ["notes", "tasks"]
    assert body["mcp"] == "unconnected"

    # Shutdown disposed the MCP client
    assert tool_client.state.value == "disposed"
