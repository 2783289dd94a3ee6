"""DraftStream host: FastAPI app that runs the message sources in the background."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from draftstream import __version__
from draftstream.config import Settings
from draftstream.fallback.storage import NotionFallbackStorage
from draftstream.llm.client import OpenRouterClient
from draftstream.mcp.client import ConnectionState, McpToolClient
from draftstream.mcp.notion import create_notion_tool_client
from draftstream.messaging.dispatcher import MessageDispatcher
from draftstream.messaging.source import MessageSourceRunner
from draftstream.messaging.telegram import TelegramMessageSource
from draftstream.workflows.prompts import PromptBuilder
from draftstream.workflows.registry import build_workflow_handlers
from draftstream.workflows.schema import SchemaDescriptionCache, build_schema_strategy

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Everything the lifespan builds and tears down."""

    tool_client: McpToolClient
    dispatcher: MessageDispatcher
    runner: MessageSourceRunner
    http_client: httpx.AsyncClient


def build_components(settings: Settings, *, tool_client: McpToolClient | None = None) -> Components:
    tool_client = tool_client or create_notion_tool_client(settings.notion)
    fallback_storage = NotionFallbackStorage(tool_client, settings.fallback.general_database_id)
    schema_cache = SchemaDescriptionCache(tool_client, build_schema_strategy(settings.notion.schema_strategy))

    handlers = build_workflow_handlers(
        settings.workflows,
        llm_client=OpenRouterClient(settings.openrouter),
        tool_client=tool_client,
        schema_cache=schema_cache,
        fallback_storage=fallback_storage,
        prompt_builder=PromptBuilder(),
    )
    dispatcher = MessageDispatcher(handlers, fallback_storage)

    http_client = httpx.AsyncClient()
    telegram = TelegramMessageSource(settings.telegram, http_client=http_client)
    runner = MessageSourceRunner([telegram], dispatcher)

    return Components(tool_client=tool_client, dispatcher=dispatcher, runner=runner, http_client=http_client)


def create_app(settings: Settings | None = None, *, tool_client: McpToolClient | None = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the message sources on startup, stop them on shutdown."""
        components = build_components(settings, tool_client=tool_client)
        app.state.components = components

        if not components.dispatcher.workflow_names:
            logger.warning("No workflows configured: every message goes to the general fallback")

        runner_task = asyncio.create_task(components.runner.run(), name="message-sources")
        logger.info("DraftStream started with workflows: %s", ", ".join(components.dispatcher.workflow_names))

        try:
            yield
        finally:
            runner_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await runner_task
            await components.runner.shutdown()
            await components.tool_client.dispose()
            await components.http_client.aclose()
            logger.info("DraftStream stopped")

    app = FastAPI(
        title="DraftStream",
        description="Routes chat messages into Notion databases through LLM tool calling",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check():
        """Liveness plus a summary of the routing table and the MCP connection."""
        components: Components = app.state.components
        mcp_state = components.tool_client.state
        status = "degraded" if mcp_state == ConnectionState.DISPOSED else "healthy"
        return JSONResponse(
            {
                "status": status,
                "service": "draftstream",
                "workflows": components.dispatcher.workflow_names,
                "mcp": mcp_state.value,
                "inflight": components.runner.inflight_count,
            },
            status_code=200 if status == "healthy" else 503,
        )

    return app


def main() -> None:
    import uvicorn

    load_dotenv()
    settings = Settings()
    logging.basicConfig(level=settings.log_level.upper())

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
