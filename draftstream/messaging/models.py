"""Inbound message and reply capability types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Awaitable, Callable, Mapping, Protocol, runtime_checkable


@runtime_checkable
class Replier(Protocol):
    """Reply channel back to the sender of a message."""

    @property
    def can_reply(self) -> bool: ...

    async def send(self, text: str) -> None: ...


class NoopReplier:
    """Replier for channels without a reply mechanism."""

    @property
    def can_reply(self) -> bool:
        return False

    async def send(self, text: str) -> None:
        return None


class CallbackReplier:
    """Replier backed by an async callable."""

    def __init__(self, callback: Callable[[str], Awaitable[None]]) -> None:
        self._callback = callback

    @property
    def can_reply(self) -> bool:
        return True

    async def send(self, text: str) -> None:
        await self._callback(text)


NO_REPLY = NoopReplier()


@dataclass(frozen=True)
class IncomingMessage:
    """One inbound unit of work, routed by ``workflow_name``."""

    workflow_name: str
    text: str
    sender_name: str
    source_type: str
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source_context: Mapping[str, str] = field(default_factory=dict)
    replier: Replier = NO_REPLY

    def __post_init__(self) -> None:
        if not self.workflow_name or not self.workflow_name.strip():
            raise ValueError("workflow_name must be a non-empty string")
        object.__setattr__(self, "source_context", MappingProxyType(dict(self.source_context)))

    @property
    def can_reply(self) -> bool:
        return self.replier.can_reply

    async def reply(self, text: str) -> None:
        await self.replier.send(text)
