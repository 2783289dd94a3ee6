"""Workflow registry: one engine per configured workflow name.

Built once at startup from ``Settings.workflows`` and handed to the
dispatcher as a plain mapping.
"""

from __future__ import annotations

import logging
from typing import Mapping

from draftstream.fallback.storage import FallbackStorage
from draftstream.llm.client import LlmClient
from draftstream.mcp.models import ToolClient
from draftstream.workflows.config import WorkflowConfig
from draftstream.workflows.engine import SchemaWorkflowEngine
from draftstream.workflows.prompts import PromptBuilder
from draftstream.workflows.schema import SchemaDescriptionCache

logger = logging.getLogger(__name__)


def build_workflow_handlers(
    workflows: Mapping[str, WorkflowConfig],
    *,
    llm_client: LlmClient,
    tool_client: ToolClient,
    schema_cache: SchemaDescriptionCache,
    fallback_storage: FallbackStorage | None = None,
    prompt_builder: PromptBuilder | None = None,
) -> dict[str, SchemaWorkflowEngine]:
    """Create the workflow name -> engine table.

    Workflows without a database id are skipped, so their messages take the
    unrouted fallback path instead.
    """
    builder = prompt_builder or PromptBuilder()
    handlers: dict[str, SchemaWorkflowEngine] = {}

    for name, config in workflows.items():
        workflow_name = name.strip()
        if not workflow_name:
            logger.warning("Skipping workflow with an empty name")
            continue
        if not config.database_id.strip():
            logger.warning("Workflow '%s' has no database_id configured, skipping", workflow_name)
            continue
        if workflow_name in handlers:
            raise ValueError(f"Workflow '{workflow_name}' is configured more than once")

        handlers[workflow_name] = SchemaWorkflowEngine(
            workflow_name,
            config,
            llm_client,
            tool_client,
            schema_cache,
            prompt_builder=builder,
            fallback_storage=fallback_storage,
        )
        logger.info(
            "Registered workflow '%s' -> database %s (model: %s)",
            workflow_name,
            config.database_id,
            config.model_override or "default",
        )

    return handlers
