"""Telegram Bot API channel.

The client is constructed once by the process that runs the bot and passed
to the reconciler; closing it is the owner's job. Delivery failures are
returned as Failed results, never raised, so one bad message cannot abort a
whole sync pass.
"""

from __future__ import annotations

import logging

import httpx

from mrsync_core.errors import ChannelError
from mrsync_core.models import Delivered, DeliveryResult, Failed

logger = logging.getLogger(__name__)

_API_BASE = "https://api.telegram.org"
_PARSE_MODE = "Markdown"
_NOT_MODIFIED = "message is not modified"


class TelegramChannel:
    """Posts, edits and deletes bot messages in a Telegram chat.

    Pass ``http`` to share or mock the transport; otherwise the channel owns
    an httpx.Client (optionally routed through ``proxy``) and closes it in
    close().
    """

    def __init__(
        self,
        token: str,
        http: httpx.Client | None = None,
        proxy: str | None = None,
        base_url: str = _API_BASE,
        timeout: float = 10.0,
    ):
        self._owns_http = http is None
        self._http = http or httpx.Client(proxy=proxy, timeout=timeout)
        self._endpoint = f"{base_url.rstrip('/')}/bot{token}"

    def __repr__(self) -> str:
        return "TelegramChannel(token=***)"

    def create(self, chat_id: int | str, text: str) -> DeliveryResult:
        """Send a new message; Delivered carries the id Telegram assigned."""
        result = self._call(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "parse_mode": _PARSE_MODE,
                "disable_web_page_preview": True,
            },
        )
        if isinstance(result, Failed):
            logger.error("can't send message to chat %s: %s", chat_id, result)
            return result
        try:
            return Delivered(message_id=int(result["message_id"]))
        except (TypeError, KeyError, ValueError):
            return Failed(ChannelError(f"sendMessage returned no message_id: {result!r}"))

    def edit(self, chat_id: int | str, message_id: int, text: str) -> DeliveryResult:
        result = self._call(
            "editMessageText",
            {
                "chat_id": chat_id,
                "message_id": message_id,
                "text": text,
                "parse_mode": _PARSE_MODE,
                "disable_web_page_preview": True,
            },
        )
        if isinstance(result, Failed):
            # Same text as already shown: the chat is in the state we wanted.
            if _NOT_MODIFIED in str(result.error):
                return Delivered(message_id=message_id)
            logger.error("can't edit message[id=%s, chatId=%s]: %s", message_id, chat_id, result)
            return result
        return Delivered(message_id=message_id)

    def delete(self, chat_id: int | str, message_id: int) -> DeliveryResult:
        result = self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})
        if isinstance(result, Failed):
            logger.error("can't delete message[id=%s, chatId=%s]: %s", message_id, chat_id, result)
            return result
        return Delivered(message_id=message_id)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def _call(self, method: str, payload: dict):
        """POST one Bot API method; return its ``result`` field or a Failed.

        Error messages never include the request URL, which embeds the token.
        """
        try:
            response = self._http.post(f"{self._endpoint}/{method}", json=payload)
        except httpx.HTTPError as e:
            return Failed(ChannelError(f"{method}: {type(e).__name__}: {e}"))

        try:
            body = response.json()
        except ValueError:
            return Failed(ChannelError(f"{method}: HTTP {response.status_code}, non-JSON body", response.status_code))

        if response.status_code != 200 or not body.get("ok"):
            description = body.get("description") or f"HTTP {response.status_code}"
            return Failed(ChannelError(f"{method}: {description}", response.status_code))
        return body.get("result")
