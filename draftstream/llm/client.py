"""Chat completion client: maps LlmRequest/LlmResponse onto a LangChain ChatModel.

OpenRouter speaks the OpenAI chat completions protocol, so the transport is
``ChatOpenAI`` pointed at the OpenRouter base URL.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_openai import ChatOpenAI

from draftstream.llm.config import OpenRouterSettings
from draftstream.llm.models import LlmMessage, LlmRequest, LlmResponse, LlmToolCall

logger = logging.getLogger(__name__)


class LlmClientError(RuntimeError):
    """The model provider call failed or returned something unusable."""


class LlmClient(Protocol):
    async def complete(self, request: LlmRequest) -> LlmResponse: ...


class OpenRouterClient:
    """Creates and caches one ChatOpenAI instance per model name."""

    def __init__(self, settings: OpenRouterSettings | None = None) -> None:
        self._settings = settings or OpenRouterSettings()
        self._cache: dict[str, BaseChatModel] = {}

    @property
    def default_model(self) -> str:
        return self._settings.default_model

    def get_model(self, model_name: str) -> BaseChatModel:
        """Get or create a ChatModel for the given model name."""
        if model_name in self._cache:
            return self._cache[model_name]

        model = self._create_model(model_name)
        self._cache[model_name] = model
        return model

    def _create_model(self, model_name: str) -> BaseChatModel:
        if not self._settings.api_key:
            raise LlmClientError("OpenRouter api_key is not configured (DRAFTSTREAM_OPENROUTER__API_KEY)")
        return ChatOpenAI(
            model=model_name,
            api_key=self._settings.api_key,
            base_url=self._settings.base_url,
            temperature=self._settings.temperature,
            max_tokens=self._settings.max_tokens,
            timeout=self._settings.timeout_s,
            max_retries=self._settings.max_retries,
            default_headers={"X-Title": self._settings.app_name},
        )

    async def complete(self, request: LlmRequest) -> LlmResponse:
        model_name = request.model_override or self._settings.default_model
        chat_model = self.get_model(model_name)

        runnable: Any = chat_model
        if request.tools:
            runnable = chat_model.bind_tools([t.to_openai_tool() for t in request.tools])

        logger.info(
            "Sending chat completion request with model '%s' (%d messages, %d tools)",
            model_name,
            len(request.messages),
            len(request.tools or []),
        )

        try:
            result = await runnable.ainvoke(to_langchain_messages(request.messages))
        except Exception as exc:
            logger.error("Chat completion failed for model '%s'", model_name, exc_info=True)
            raise LlmClientError(f"Failed to complete chat request for model '{model_name}'") from exc

        if not isinstance(result, AIMessage):
            raise LlmClientError(f"Unexpected response type {type(result).__name__} for model '{model_name}'")

        response = from_ai_message(result, model_name)
        logger.info(
            "Response received for model '%s': %d prompt tokens, %d completion tokens, %d tool calls",
            response.model,
            response.prompt_tokens,
            response.completion_tokens,
            len(response.tool_calls),
        )
        return response


# ---------------------------------------------------------------------------
# Message conversion
# ---------------------------------------------------------------------------


def _parse_arguments(arguments_json: str) -> dict[str, Any]:
    try:
        parsed = json.loads(arguments_json) if arguments_json else {}
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_langchain_messages(messages: list[LlmMessage]) -> list[BaseMessage]:
    """Convert conversation history to LangChain message objects."""
    converted: list[BaseMessage] = []
    for msg in messages:
        content = msg.content or ""
        if msg.role == "system":
            converted.append(SystemMessage(content=content))
        elif msg.role == "user":
            converted.append(HumanMessage(content=content))
        elif msg.role == "assistant":
            converted.append(
                AIMessage(
                    content=content,
                    tool_calls=[
                        {
                            "name": tc.function_name,
                            "args": _parse_arguments(tc.arguments_json),
                            "id": tc.id,
                        }
                        for tc in msg.tool_calls
                    ],
                )
            )
        elif msg.role == "tool":
            converted.append(ToolMessage(content=content, tool_call_id=msg.tool_call_id or ""))
        else:
            raise ValueError(f"Unknown message role: {msg.role}")
    return converted


def _content_to_text(content: Any) -> str | None:
    if isinstance(content, str):
        return content or None
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        text = "".join(parts)
        return text or None
    return None


def from_ai_message(message: AIMessage, requested_model: str) -> LlmResponse:
    """Map a LangChain AIMessage onto an LlmResponse."""
    tool_calls = [
        LlmToolCall(
            id=str(tc.get("id") or ""),
            function_name=tc["name"],
            arguments_json=json.dumps(tc.get("args") or {}),
        )
        for tc in message.tool_calls
    ]
    # Calls whose arguments failed to parse are kept so the tool side can report the error.
    for itc in message.invalid_tool_calls:
        tool_calls.append(
            LlmToolCall(
                id=str(itc.get("id") or ""),
                function_name=str(itc.get("name") or ""),
                arguments_json=str(itc.get("args") or ""),
            )
        )

    usage = message.usage_metadata or {}
    return LlmResponse(
        content=_content_to_text(message.content),
        tool_calls=tool_calls,
        model=str(message.response_metadata.get("model_name") or requested_model),
        prompt_tokens=int(usage.get("input_tokens", 0) or 0),
        completion_tokens=int(usage.get("output_tokens", 0) or 0),
    )
