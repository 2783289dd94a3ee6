"""Tests for building the workflow routing table from configuration."""

from __future__ import annotations

import pytest

from draftstream.workflows.config import WorkflowConfig
from draftstream.workflows.engine import SchemaWorkflowEngine
from draftstream.workflows.registry import build_workflow_handlers
from draftstream.workflows.schema import SchemaDescriptionCache
from tests.fakes import FakeToolClient, ScriptedLlm


def _build(workflows):
    tool_client = FakeToolClient()
    return build_workflow_handlers(
        workflows,
        llm_client=ScriptedLlm(),
        tool_client=tool_client,
        schema_cache=SchemaDescriptionCache(tool_client),
    )


def test_one_engine_per_configured_workflow():
    handlers = _build(
        {
            "notes": WorkflowConfig(database_id="db-notes"),
            "tasks": WorkflowConfig(database_id="db-tasks", model_override="anthropic/claude-3.5-haiku"),
        }
    )

    assert sorted(handlers) == ["notes", "tasks"]
    assert all(isinstance(h, SchemaWorkflowEngine) for h in handlers.values())
    assert handlers["tasks"].config.model_override == "anthropic/claude-3.5-haiku"
    assert handlers["notes"].workflow_name == "notes"


def test_workflows_without_database_are_skipped(caplog):
    handlers = _build({"notes": WorkflowConfig(database_id="db-notes"), "snippets": WorkflowConfig(database_id=" ")})

    assert list(handlers) == ["notes"]
    assert "snippets" in caplog.text


def test_names_are_trimmed_and_duplicates_rejected():
    with pytest.raises(ValueError):
        _build({"notes": WorkflowConfig(database_id="a"), " notes ": WorkflowConfig(database_id="b")})


def test_blank_name_is_skipped():
    assert _build({"  ": WorkflowConfig(database_id="db")}) == {}
