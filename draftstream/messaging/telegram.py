"""Telegram message source: long-polls the Bot API for forum topic messages.

Each forum topic (``message_thread_id``) of one configured group maps to a
workflow name. Messages from other chats, non-text messages and unmapped
topics are ignored.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import BaseModel

from draftstream.messaging.models import IncomingMessage
from draftstream.messaging.source import OnMessage

logger = logging.getLogger(__name__)

SOURCE_TYPE = "telegram"


class TelegramSettings(BaseModel):
    bot_token: str = ""
    group_id: int = 0
    topic_mappings: dict[int, str] = {}
    api_base_url: str = "https://api.telegram.org"
    poll_timeout_s: int = 30
    error_backoff_s: float = 5.0


class TelegramApiError(RuntimeError):
    pass


class TelegramBotApi:
    """The handful of Bot API methods DraftStream uses."""

    def __init__(self, settings: TelegramSettings, http_client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http_client

    async def call(self, method: str, params: dict[str, Any] | None = None, *, timeout_s: float = 15.0) -> Any:
        url = f"{self._settings.api_base_url}/bot{self._settings.bot_token}/{method}"
        resp = await self._http.post(url, json=params or {}, timeout=timeout_s)
        try:
            data = resp.json()
        except ValueError as exc:
            raise TelegramApiError(f"{method}: non-JSON response (HTTP {resp.status_code})") from exc
        if not isinstance(data, dict):
            raise TelegramApiError(f"{method}: unexpected response body (HTTP {resp.status_code})")
        if not data.get("ok"):
            raise TelegramApiError(f"{method}: {data.get('description', 'unknown error')} (HTTP {resp.status_code})")
        return data.get("result")

    async def get_updates(self, offset: int | None, timeout_s: int) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"timeout": timeout_s, "allowed_updates": ["message"]}
        if offset is not None:
            params["offset"] = offset
        result = await self.call("getUpdates", params, timeout_s=timeout_s + 10.0)
        return result if isinstance(result, list) else []

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        message_thread_id: int | None = None,
        reply_to_message_id: int | None = None,
    ) -> None:
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if message_thread_id is not None:
            params["message_thread_id"] = message_thread_id
        if reply_to_message_id is not None:
            params["reply_parameters"] = {"message_id": reply_to_message_id, "allow_sending_without_reply": True}
        await self.call("sendMessage", params)


class TelegramReplier:
    """Replies in the same topic, quoting the original message."""

    def __init__(self, api: TelegramBotApi, chat_id: int, thread_id: int | None, message_id: int | None) -> None:
        self._api = api
        self._chat_id = chat_id
        self._thread_id = thread_id
        self._message_id = message_id

    @property
    def can_reply(self) -> bool:
        return True

    async def send(self, text: str) -> None:
        await self._api.send_message(
            self._chat_id,
            text,
            message_thread_id=self._thread_id,
            reply_to_message_id=self._message_id,
        )


class TelegramMessageSource:
    def __init__(self, settings: TelegramSettings, *, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient()
        self.api = TelegramBotApi(settings, self._http)

    @property
    def source_type(self) -> str:
        return SOURCE_TYPE

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def start(self, on_message: OnMessage) -> None:
        if not self._settings.bot_token.strip():
            logger.warning("Telegram bot_token is not configured, skipping Telegram message source")
            return

        offset = await self._skip_pending_updates()
        logger.info("Telegram message source started for group %s", self._settings.group_id)

        while True:
            try:
                updates = await self.api.get_updates(offset, self._settings.poll_timeout_s)
            except (httpx.HTTPError, TelegramApiError):
                logger.error("Telegram polling error occurred", exc_info=True)
                await asyncio.sleep(self._settings.error_backoff_s)
                continue

            for update in updates:
                if not isinstance(update, dict):
                    continue
                update_id = update.get("update_id")
                if isinstance(update_id, int):
                    offset = max(offset or 0, update_id + 1)

                try:
                    message = self.to_incoming_message(update)
                    if message is not None:
                        await on_message(message)
                except Exception:
                    logger.exception("Failed to handle Telegram update %s", update_id)

    async def _skip_pending_updates(self) -> int | None:
        """Acknowledge everything queued while the bot was offline."""
        try:
            pending = await self.api.call("getUpdates", {"offset": -1, "timeout": 0})
        except (httpx.HTTPError, TelegramApiError):
            logger.warning("Could not drop pending Telegram updates", exc_info=True)
            return None
        if isinstance(pending, list) and pending:
            return int(pending[-1]["update_id"]) + 1
        return None

    def resolve_workflow_name(self, message_thread_id: int | None) -> str | None:
        if message_thread_id is None:
            return None
        return self._settings.topic_mappings.get(message_thread_id)

    def to_incoming_message(self, update: dict[str, Any]) -> IncomingMessage | None:
        message = update.get("message")
        if not isinstance(message, dict) or not message.get("text"):
            return None

        chat_id = (message.get("chat") or {}).get("id")
        if chat_id != self._settings.group_id:
            logger.debug("Ignoring message from chat %s, expected group %s", chat_id, self._settings.group_id)
            return None

        thread_id = message.get("message_thread_id")
        workflow_name = self.resolve_workflow_name(thread_id)
        if workflow_name is None:
            logger.warning(
                "No workflow mapping for topic thread %s in group %s", thread_id, self._settings.group_id
            )
            return None

        message_id = message.get("message_id")
        sent_at = message.get("date")
        received_at = (
            datetime.fromtimestamp(sent_at, tz=timezone.utc) if isinstance(sent_at, int) else datetime.now(timezone.utc)
        )
        sender_name = (message.get("from") or {}).get("first_name") or "Unknown"

        incoming = IncomingMessage(
            workflow_name=workflow_name,
            text=message["text"],
            sender_name=sender_name,
            source_type=SOURCE_TYPE,
            received_at=received_at,
            source_context={
                "ChatId": str(chat_id),
                "MessageId": str(message_id) if message_id is not None else "",
                "ThreadId": str(thread_id) if thread_id is not None else "",
            },
            replier=TelegramReplier(self.api, chat_id, thread_id, message_id),
        )
        logger.info(
            "Received message from %s in workflow '%s' (thread %s)", sender_name, workflow_name, thread_id
        )
        return incoming
