"""Tests for message routing and the unrouted-message fallback."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from draftstream.messaging.dispatcher import (
    UNHANDLED_FAILED_REPLY,
    UNHANDLED_SAVED_REPLY,
    MessageDispatcher,
)
from draftstream.messaging.models import NO_REPLY
from tests.fakes import RecordingReplier


def _fallback(saved: bool = True) -> AsyncMock:
    storage = AsyncMock()
    storage.save_to_general_fallback.return_value = saved
    storage.save_to_workflow_database.return_value = saved
    return storage


@pytest.mark.asyncio
async def test_dispatch_routes_to_registered_handler(make_message):
    handler = AsyncMock()
    storage = _fallback()
    dispatcher = MessageDispatcher({"notes": handler}, storage)

    message = make_message("notes", "buy milk")
    await dispatcher.dispatch(message)

    handler.handle.assert_awaited_once_with(message)
    storage.save_to_general_fallback.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_workflow_goes_to_general_fallback_only(make_message, replier):
    handler = AsyncMock()
    storage = _fallback(saved=True)
    dispatcher = MessageDispatcher({"notes": handler}, storage)

    await dispatcher.dispatch(make_message("recipes", "pancakes", sender_name="Bob", source_type="telegram"))

    handler.handle.assert_not_awaited()
    storage.save_to_workflow_database.assert_not_awaited()
    storage.save_to_general_fallback.assert_awaited_once_with(
        "pancakes", "Bob", "telegram", "workflow:recipes, source:telegram"
    )
    assert replier.sent == [UNHANDLED_SAVED_REPLY]


@pytest.mark.asyncio
async def test_unknown_workflow_failed_save_sends_failure_notice(make_message, replier):
    dispatcher = MessageDispatcher({}, _fallback(saved=False))

    await dispatcher.dispatch(make_message("recipes"))

    assert replier.sent == [UNHANDLED_FAILED_REPLY]


@pytest.mark.asyncio
async def test_unknown_workflow_without_replier_still_saves(make_message):
    storage = _fallback()
    dispatcher = MessageDispatcher({}, storage)

    await dispatcher.dispatch(make_message("recipes", replier=NO_REPLY))

    storage.save_to_general_fallback.assert_awaited_once()


@pytest.mark.asyncio
async def test_reply_failure_on_unhandled_path_is_swallowed(make_message):
    storage = _fallback()
    dispatcher = MessageDispatcher({}, storage)

    # Must not raise
    await dispatcher.dispatch(make_message("recipes", replier=RecordingReplier(fail=True)))

    storage.save_to_general_fallback.assert_awaited_once()


@pytest.mark.asyncio
async def test_handler_exception_is_logged_not_raised(make_message, caplog):
    handler = AsyncMock()
    handler.handle.side_effect = RuntimeError("boom")
    dispatcher = MessageDispatcher({"notes": handler}, _fallback())

    await dispatcher.dispatch(make_message("notes"))

    assert "raised an unhandled error" in caplog.text


def test_handler_table_is_copied_at_construction():
    handlers = {"notes": AsyncMock()}
    dispatcher = MessageDispatcher(handlers, _fallback())

    handlers["tasks"] = AsyncMock()

    assert dispatcher.workflow_names == ["notes"]
    assert dispatcher.get_handler("tasks") is None
