"""DraftStream configuration, loaded from the environment and ``.env``.

Nested sections use ``__`` as the delimiter, e.g.::

    DRAFTSTREAM_OPENROUTER__API_KEY=sk-or-...
    DRAFTSTREAM_NOTION__INTEGRATION_TOKEN=ntn_...
    DRAFTSTREAM_TELEGRAM__TOPIC_MAPPINGS='{"12": "notes", "15": "tasks"}'
    DRAFTSTREAM_WORKFLOWS='{"notes": {"database_id": "abc123"}}'
"""

from __future__ import annotations

from pydantic import BaseModel
from pydantic_settings import BaseSettings

from draftstream.llm.config import OpenRouterSettings
from draftstream.mcp.notion import NotionSettings
from draftstream.messaging.telegram import TelegramSettings
from draftstream.workflows.config import WorkflowConfig


class FallbackSettings(BaseModel):
    # Blank disables the general fallback inbox
    general_database_id: str = ""


class Settings(BaseSettings):
    """Environment-driven settings for the DraftStream host."""

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8060

    openrouter: OpenRouterSettings = OpenRouterSettings()
    notion: NotionSettings = NotionSettings()
    telegram: TelegramSettings = TelegramSettings()
    fallback: FallbackSettings = FallbackSettings()
    workflows: dict[str, WorkflowConfig] = {}

    model_config = {
        "env_prefix": "DRAFTSTREAM_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "extra": "ignore",
    }
