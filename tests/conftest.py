"""Shared test fixtures for draftstream."""

from __future__ import annotations

from typing import Any

import pytest

from draftstream.messaging.models import IncomingMessage
from tests.fakes import FakeToolClient, RecordingReplier


@pytest.fixture(autouse=True)
def set_test_env(monkeypatch):
    """Keep real credentials out of tests."""
    for key in (
        "DRAFTSTREAM_OPENROUTER__API_KEY",
        "DRAFTSTREAM_NOTION__INTEGRATION_TOKEN",
        "DRAFTSTREAM_TELEGRAM__BOT_TOKEN",
        "DRAFTSTREAM_WORKFLOWS",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def tool_client() -> FakeToolClient:
    return FakeToolClient()


@pytest.fixture
def replier() -> RecordingReplier:
    return RecordingReplier()


@pytest.fixture
def make_message(replier):
    def _make(workflow_name: str = "notes", text: str = "buy milk", **kwargs: Any) -> IncomingMessage:
        kwargs.setdefault("sender_name", "Alice")
        kwargs.setdefault("source_type", "telegram")
        kwargs.setdefault("replier", replier)
        return IncomingMessage(workflow_name=workflow_name, text=text, **kwargs)

    return _make
