"""Message sources and the runner that feeds them into the dispatcher.

Every received message is dispatched as its own asyncio task, so a slow
workflow never blocks ingestion of the next message.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol, Sequence

from draftstream.messaging.dispatcher import MessageDispatcher
from draftstream.messaging.models import IncomingMessage

logger = logging.getLogger(__name__)

OnMessage = Callable[[IncomingMessage], Awaitable[None]]


class MessageSource(Protocol):
    @property
    def source_type(self) -> str: ...

    async def start(self, on_message: OnMessage) -> None:
        """Receive messages until cancelled, calling ``on_message`` for each."""
        ...


class MessageSourceRunner:
    def __init__(self, sources: Sequence[MessageSource], dispatcher: MessageDispatcher) -> None:
        self._sources = list(sources)
        self._dispatcher = dispatcher
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def run(self) -> None:
        """Run every source concurrently until all of them return or are cancelled."""
        await asyncio.gather(*(self._run_source(source) for source in self._sources))

    async def submit(self, message: IncomingMessage) -> None:
        task = asyncio.create_task(self._dispatch(message), name=f"dispatch:{message.workflow_name}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def wait_idle(self) -> None:
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._inflight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Message source runner stopped (%d in-flight dispatches cancelled)", len(tasks))

    async def _run_source(self, source: MessageSource) -> None:
        logger.info("Starting message source: %s", source.source_type)
        try:
            await source.start(self.submit)
        except Exception:
            logger.exception("Message source '%s' stopped with an error", source.source_type)

    async def _dispatch(self, message: IncomingMessage) -> None:
        try:
            await self._dispatcher.dispatch(message)
        except Exception:
            logger.exception(
                "Failed to dispatch %s message for workflow '%s'",
                message.source_type,
                message.workflow_name,
            )
