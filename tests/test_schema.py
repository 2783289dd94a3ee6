"""Tests for schema lookup strategies, formatting and the description cache."""

from __future__ import annotations

import asyncio
import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from draftstream.mcp.models import McpToolResult
from draftstream.workflows.schema import (
    NO_PROPERTIES,
    SCHEMA_UNAVAILABLE,
    DataSourceStrategy,
    RetrieveDatabaseStrategy,
    SchemaDescriptionCache,
    build_schema_strategy,
    format_schema_description,
)
from tests.fakes import FakeToolClient

SCHEMA = {
    "object": "database",
    "properties": {
        "Name": {"type": "title", "title": {}},
        "Status": {"type": "status", "status": {"options": [{"name": "Not started"}, {"name": "Done"}]}},
        "Tags": {"type": "multi_select", "multi_select": {"options": [{"name": "Work"}, {"name": "home"}]}},
        "Priority": {"type": "select", "select": {"options": [{"name": "High"}]}},
        "Created": {"type": "created_time", "created_time": {}},
        "Due": {"type": "date", "date": {}},
    },
}


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def test_format_lists_every_property_in_order():
    lines = format_schema_description(json.dumps(SCHEMA)).splitlines()

    assert [line.split(" (")[0] for line in lines] == [
        "- Name",
        "- Status",
        "- Tags",
        "- Priority",
        "- Created",
        "- Due",
    ]


def test_format_marks_title_and_system_managed():
    description = format_schema_description(json.dumps(SCHEMA))

    assert "- Name (title) - the page title" in description
    assert "- Created (created_time) - system-managed, do not set" in description
    assert "- Due (date)" in description


def test_format_choice_options_keep_exact_casing_and_set_shape():
    description = format_schema_description(json.dumps(SCHEMA))

    assert '"Work", "home"' in description
    assert '{"Tags": {"multi_select": [{"name": "<option>"}]}}' in description
    assert '{"Priority": {"select": {"name": "<option>"}}}' in description
    assert '{"Status": {"status": {"name": "<option>"}}}' in description


@pytest.mark.parametrize("document", [{}, {"properties": {}}, {"object": "database"}])
def test_format_without_properties(document):
    assert format_schema_description(json.dumps(document)) == NO_PROPERTIES


def test_format_invalid_json_raises():
    with pytest.raises(ValueError):
        format_schema_description("<html>")


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def test_build_schema_strategy():
    assert isinstance(build_schema_strategy("database"), RetrieveDatabaseStrategy)
    assert isinstance(build_schema_strategy("data_source"), DataSourceStrategy)
    with pytest.raises(ValueError):
        build_schema_strategy("graphql")


@pytest.mark.asyncio
async def test_retrieve_database_strategy(tool_client: FakeToolClient):
    tool_client.on("API-retrieve-a-database", lambda args: SCHEMA)

    raw = await RetrieveDatabaseStrategy().resolve(tool_client, "db-1")

    assert json.loads(raw) == SCHEMA
    assert tool_client.calls == [("API-retrieve-a-database", {"database_id": "db-1"})]


@pytest.mark.asyncio
async def test_data_source_strategy_follows_first_data_source(tool_client: FakeToolClient):
    tool_client.on("API-retrieve-a-database", lambda args: {"data_sources": [{"id": "ds-1"}, {"id": "ds-2"}]})
    tool_client.on("API-retrieve-a-data-source", lambda args: SCHEMA)

    raw = await DataSourceStrategy().resolve(tool_client, "db-1")

    assert json.loads(raw) == SCHEMA
    assert tool_client.calls_to("API-retrieve-a-data-source") == [{"data_source_id": "ds-1"}]


@pytest.mark.asyncio
async def test_data_source_strategy_uses_database_properties_when_no_data_sources(tool_client: FakeToolClient):
    tool_client.on("API-retrieve-a-database", lambda args: SCHEMA)

    raw = await DataSourceStrategy().resolve(tool_client, "db-1")

    assert json.loads(raw) == SCHEMA
    assert tool_client.calls_to("API-retrieve-a-data-source") == []


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cache_hit_does_not_call_server(tool_client: FakeToolClient):
    tool_client.on("API-retrieve-a-database", lambda args: SCHEMA)
    cache = SchemaDescriptionCache(tool_client)

    first = await cache.fetch("db-1")
    second = await cache.fetch("db-1")

    assert first == second
    assert "db-1" in cache
    assert len(tool_client.calls) == 1


@pytest.mark.asyncio
async def test_failure_returns_placeholder_and_is_not_cached(tool_client: FakeToolClient):
    tool_client.on("API-retrieve-a-database", lambda args: McpToolResult(content="object_not_found", is_error=True))
    cache = SchemaDescriptionCache(tool_client)

    assert await cache.fetch("db-1") == SCHEMA_UNAVAILABLE
    assert "db-1" not in cache

    tool_client.on("API-retrieve-a-database", lambda args: SCHEMA)
    assert "- Name (title)" in await cache.fetch("db-1")
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_transport_exception_returns_placeholder(tool_client: FakeToolClient):
    tool_client.on("API-retrieve-a-database", lambda args: ConnectionError("gone"))
    cache = SchemaDescriptionCache(tool_client)

    assert await cache.fetch("db-1") == SCHEMA_UNAVAILABLE


@pytest.mark.asyncio
async def test_cancellation_is_not_converted_to_placeholder():
    started = asyncio.Event()

    class BlockingToolClient(FakeToolClient):
        async def call_tool(self, name, arguments_json):
            started.set()
            await asyncio.Event().wait()

    cache = SchemaDescriptionCache(BlockingToolClient())
    task = asyncio.create_task(cache.fetch("db-1"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(cache) == 0


@settings(max_examples=25, deadline=None)
@given(
    database_ids=st.lists(st.sampled_from(["db-a", "db-b", "db-c"]), min_size=1, max_size=12),
)
def test_concurrent_fetches_agree_per_database(database_ids):
    """Any interleaving of fetches yields one stable description per database."""

    async def scenario():
        tool_client = FakeToolClient()

        def respond(args):
            name = args["database_id"]
            return {"properties": {f"Title {name}": {"type": "title", "title": {}}}}

        tool_client.on("API-retrieve-a-database", respond)
        cache = SchemaDescriptionCache(tool_client)

        results = await asyncio.gather(*(cache.fetch(db) for db in database_ids))
        again = [await cache.fetch(db) for db in database_ids]
        return tool_client, cache, results, again

    tool_client, cache, results, again = asyncio.run(scenario())

    for db, description in zip(database_ids, results):
        assert description == f"- Title {db} (title) - the page title"
    assert results == again
    assert len(cache) == len(set(database_ids))
    # Concurrent misses may duplicate lookups, but never beyond one per request
    assert len(tool_client.calls) <= len(database_ids)
