"""LLM completion layer: provider-neutral message types plus the OpenRouter client."""
