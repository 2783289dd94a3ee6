"""OpenRouter model settings."""

from __future__ import annotations

from pydantic import BaseModel

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4o-mini"


class OpenRouterSettings(BaseModel):
    """Connection and model defaults for the OpenRouter chat completions API."""

    api_key: str = ""
    base_url: str = OPENROUTER_BASE_URL
    default_model: str = DEFAULT_MODEL
    temperature: float = 0.0
    max_tokens: int = 2048
    timeout_s: float = 60.0
    max_retries: int = 3  # Provider-side retries with backoff, handled by the SDK
    app_name: str = "DraftStream"
