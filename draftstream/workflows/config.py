"""Per-workflow configuration."""

from __future__ import annotations

from pydantic import BaseModel


class WorkflowConfig(BaseModel):
    """Target Notion database and optional model override for one workflow."""

    database_id: str
    model_override: str | None = None

    model_config = {"frozen": True}
