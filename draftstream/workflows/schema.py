"""Schema description cache for Notion databases.

The description is a human-readable rendering of a database's properties that
is embedded in the workflow system prompt. How the raw schema is obtained
depends on the Notion API version the MCP server speaks, so the lookup is a
pluggable strategy:

- RetrieveDatabaseStrategy: properties live on the database object
- DataSourceStrategy: the database points at data sources that carry them
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from draftstream.mcp.models import ToolClient

logger = logging.getLogger(__name__)

SCHEMA_UNAVAILABLE = "Schema not available. Use the database ID directly with the tools."
NO_PROPERTIES = "No properties found in database schema."

_CHOICE_TYPES = ("select", "multi_select", "status")
_SYSTEM_MANAGED_TYPES = {
    "created_time",
    "created_by",
    "last_edited_time",
    "last_edited_by",
    "formula",
    "rollup",
    "unique_id",
}


class SchemaLookupError(RuntimeError):
    """A step of the remote schema lookup failed."""


class SchemaStrategy(Protocol):
    async def resolve(self, tool_client: ToolClient, database_id: str) -> str:
        """Return the raw JSON document whose ``properties`` describe the schema."""
        ...


async def _call_json_tool(tool_client: ToolClient, tool_name: str, arguments: dict[str, Any]) -> str:
    result = await tool_client.call_tool(tool_name, json.dumps(arguments))
    if result.is_error:
        raise SchemaLookupError(f"{tool_name} returned an error: {result.content}")
    return result.content


class RetrieveDatabaseStrategy:
    def __init__(self, tool_name: str = "API-retrieve-a-database") -> None:
        self.tool_name = tool_name

    async def resolve(self, tool_client: ToolClient, database_id: str) -> str:
        return await _call_json_tool(tool_client, self.tool_name, {"database_id": database_id})


class DataSourceStrategy:
    """Resolve database -> first data source -> data source properties."""

    def __init__(
        self,
        database_tool_name: str = "API-retrieve-a-database",
        data_source_tool_name: str = "API-retrieve-a-data-source",
    ) -> None:
        self.database_tool_name = database_tool_name
        self.data_source_tool_name = data_source_tool_name

    async def resolve(self, tool_client: ToolClient, database_id: str) -> str:
        raw_database = await _call_json_tool(tool_client, self.database_tool_name, {"database_id": database_id})
        try:
            database = json.loads(raw_database)
        except json.JSONDecodeError as exc:
            raise SchemaLookupError(f"{self.database_tool_name} returned invalid JSON") from exc

        data_sources = database.get("data_sources") if isinstance(database, dict) else None
        if not data_sources:
            if isinstance(database, dict) and database.get("properties"):
                return raw_database
            raise SchemaLookupError(f"Database {database_id} has no data sources")

        data_source_id = data_sources[0].get("id") if isinstance(data_sources[0], dict) else None
        if not data_source_id:
            raise SchemaLookupError(f"Database {database_id} data source has no id")

        return await _call_json_tool(tool_client, self.data_source_tool_name, {"data_source_id": data_source_id})


def build_schema_strategy(name: str) -> SchemaStrategy:
    if name == "database":
        return RetrieveDatabaseStrategy()
    if name == "data_source":
        return DataSourceStrategy()
    raise ValueError(f"Unknown schema strategy: {name!r} (expected 'database' or 'data_source')")


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def _option_names(property_value: dict[str, Any], property_type: str) -> list[str]:
    choice = property_value.get(property_type)
    if not isinstance(choice, dict):
        return []
    options = choice.get("options")
    if not isinstance(options, list):
        return []
    names = []
    for option in options:
        if isinstance(option, dict) and option.get("name"):
            names.append(str(option["name"]))
    return names


def _set_shape(name: str, property_type: str) -> str:
    if property_type == "multi_select":
        value: Any = {"multi_select": [{"name": "<option>"}]}
    else:
        value = {property_type: {"name": "<option>"}}
    return json.dumps({name: value}, ensure_ascii=False)


def format_schema_description(raw_schema_json: str) -> str:
    """Render a Notion database/data source JSON document as a property list."""
    document = json.loads(raw_schema_json)
    properties = document.get("properties") if isinstance(document, dict) else None
    if not isinstance(properties, dict) or not properties:
        return NO_PROPERTIES

    lines = []
    for name, value in properties.items():
        value = value if isinstance(value, dict) else {}
        property_type = str(value.get("type") or "unknown")
        line = f"- {name} ({property_type})"

        if property_type in _SYSTEM_MANAGED_TYPES:
            line += " - system-managed, do not set"
        elif property_type == "title":
            line += " - the page title"
        elif property_type in _CHOICE_TYPES:
            options = _option_names(value, property_type)
            if options:
                quoted = ", ".join(json.dumps(o, ensure_ascii=False) for o in options)
                line += f" - options (exact casing): {quoted}; set as {_set_shape(name, property_type)}"

        lines.append(line)

    return "\n".join(lines)


class SchemaDescriptionCache:
    """Per-database memo of formatted schema descriptions.

    Concurrent misses for one database may both hit the server; the first
    stored value wins and later ones are equivalent.
    """

    def __init__(self, tool_client: ToolClient, strategy: SchemaStrategy | None = None) -> None:
        self._tool_client = tool_client
        self._strategy = strategy or RetrieveDatabaseStrategy()
        self._descriptions: dict[str, str] = {}

    def __contains__(self, database_id: object) -> bool:
        return database_id in self._descriptions

    def __len__(self) -> int:
        return len(self._descriptions)

    async def fetch(self, database_id: str) -> str:
        cached = self._descriptions.get(database_id)
        if cached is not None:
            return cached

        logger.info("Fetching database schema for %s", database_id)
        try:
            raw = await self._strategy.resolve(self._tool_client, database_id)
            description = format_schema_description(raw)
        except Exception as exc:
            logger.warning("Failed to fetch schema for database %s: %s", database_id, exc)
            return SCHEMA_UNAVAILABLE

        stored = self._descriptions.setdefault(database_id, description)
        logger.info("Cached database schema for %s", database_id)
        return stored
