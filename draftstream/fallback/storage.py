"""Fallback storage: save a message as-is into a Notion database.

Two tiers are offered:
- the workflow's own database, used when automated structuring failed
- a single general "fallback inbox" database, used for unrouted messages
  and as the last resort

Both return a bool and never raise (cancellation excepted).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from draftstream.mcp.models import ToolClient

logger = logging.getLogger(__name__)

CREATE_PAGE_TOOL_NAME = "API-post-page"
MAX_TITLE_LENGTH = 100


class FallbackStorage(Protocol):
    async def save_to_workflow_database(
        self,
        database_id: str,
        title: str,
        text: str,
        sender_name: str,
        source_type: str,
        workflow_name: str,
    ) -> bool: ...

    async def save_to_general_fallback(
        self,
        text: str,
        sender_name: str,
        source_type: str,
        source_context: str,
    ) -> bool: ...


def truncate_title(text: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    single_line = " ".join(text.splitlines()).strip()
    if len(single_line) <= max_length:
        return single_line
    return single_line[: max_length - 3] + "..."


def format_page_body(text: str, sender_name: str, context: str, received_at: datetime | None = None) -> str:
    received = (received_at or datetime.now(timezone.utc)).isoformat()
    return f"From: {sender_name}\nContext: {context}\nReceived: {received}\n\n{text}"


def build_create_page_arguments(database_id: str, title: str, source_type: str, body: str) -> dict[str, Any]:
    return {
        "parent": {"database_id": database_id},
        "properties": {
            "Title": {"title": [{"text": {"content": title}}]},
            "Source": {"select": {"name": source_type}},
        },
        "children": [
            {
                "object": "block",
                "type": "paragraph",
                "paragraph": {"rich_text": [{"type": "text", "text": {"content": body}}]},
            }
        ],
    }


class NotionFallbackStorage:
    def __init__(self, tool_client: ToolClient, general_database_id: str = "") -> None:
        self._tool_client = tool_client
        self._general_database_id = (general_database_id or "").strip()

    @property
    def general_fallback_configured(self) -> bool:
        return bool(self._general_database_id)

    async def save_to_workflow_database(
        self,
        database_id: str,
        title: str,
        text: str,
        sender_name: str,
        source_type: str,
        workflow_name: str,
    ) -> bool:
        logger.info(
            "Attempting fallback save to workflow '%s' database %s for message from %s",
            workflow_name,
            database_id,
            sender_name,
        )
        return await self._create_page(
            database_id,
            title=title,
            body=format_page_body(text, sender_name, workflow_name),
            source_type=source_type,
            label=f"workflow '{workflow_name}'",
        )

    async def save_to_general_fallback(
        self,
        text: str,
        sender_name: str,
        source_type: str,
        source_context: str,
    ) -> bool:
        if not self._general_database_id:
            logger.warning("General fallback database is not configured; message from %s was not saved", sender_name)
            return False

        logger.info("Attempting general fallback save for message from %s (%s)", sender_name, source_context)
        return await self._create_page(
            self._general_database_id,
            title=text,
            body=format_page_body(text, sender_name, source_context),
            source_type=source_type,
            label="general fallback",
        )

    async def _create_page(self, database_id: str, *, title: str, body: str, source_type: str, label: str) -> bool:
        try:
            arguments = build_create_page_arguments(database_id, truncate_title(title), source_type, body)
            result = await self._tool_client.call_tool(CREATE_PAGE_TOOL_NAME, json.dumps(arguments))
        except Exception:
            logger.error("Fallback save failed for %s database %s", label, database_id, exc_info=True)
            return False

        if result.is_error:
            logger.warning(
                "Fallback save returned error for %s database %s: %s",
                label,
                database_id,
                result.content,
            )
            return False

        logger.info("Fallback save succeeded for %s database %s", label, database_id)
        return True
