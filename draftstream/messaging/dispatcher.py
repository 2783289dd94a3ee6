"""Message dispatcher: routes each inbound message to exactly one workflow handler.

Handlers are registered once at startup as a plain name -> handler mapping.
Messages for unknown workflows go to the general fallback inbox instead.
"""

from __future__ import annotations

import logging
from typing import Mapping, Protocol

from draftstream.fallback.storage import FallbackStorage
from draftstream.messaging.models import IncomingMessage

logger = logging.getLogger(__name__)

UNHANDLED_SAVED_REPLY = (
    "This topic isn't configured for a workflow, but your message was saved to the fallback inbox."
)
UNHANDLED_FAILED_REPLY = (
    "This topic isn't configured for a workflow, and saving to fallback failed. Please try again."
)


class WorkflowHandler(Protocol):
    async def handle(self, message: IncomingMessage) -> None: ...


class MessageDispatcher:
    def __init__(self, handlers: Mapping[str, WorkflowHandler], fallback_storage: FallbackStorage) -> None:
        self._handlers: dict[str, WorkflowHandler] = dict(handlers)
        self._fallback_storage = fallback_storage

    @property
    def workflow_names(self) -> list[str]:
        return sorted(self._handlers)

    def get_handler(self, workflow_name: str) -> WorkflowHandler | None:
        return self._handlers.get(workflow_name)

    async def dispatch(self, message: IncomingMessage) -> None:
        handler = self._handlers.get(message.workflow_name)

        if handler is None:
            logger.warning(
                "No workflow handler registered for workflow '%s' from source '%s', attempting fallback save",
                message.workflow_name,
                message.source_type,
            )
            await self._save_unhandled_message(message)
            return

        logger.info(
            "Dispatching message to workflow '%s' from %s via %s",
            message.workflow_name,
            message.sender_name,
            message.source_type,
        )
        try:
            await handler.handle(message)
        except Exception:
            # Handlers convert their own failures into replies; anything left is only logged.
            logger.exception("Workflow handler '%s' raised an unhandled error", message.workflow_name)

    async def _save_unhandled_message(self, message: IncomingMessage) -> None:
        source_context = f"workflow:{message.workflow_name}, source:{message.source_type}"

        saved = await self._fallback_storage.save_to_general_fallback(
            message.text, message.sender_name, message.source_type, source_context
        )

        if not message.can_reply:
            return

        try:
            await message.reply(UNHANDLED_SAVED_REPLY if saved else UNHANDLED_FAILED_REPLY)
        except Exception:
            logger.warning(
                "Failed to send fallback reply for unhandled workflow '%s'",
                message.workflow_name,
                exc_info=True,
            )
