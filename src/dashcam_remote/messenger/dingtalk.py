"""DingTalk update source using Stream mode over an aiohttp websocket.

DingTalk pushes chatbot callbacks over a websocket instead of offering a
``getUpdates`` style API. The reader task acknowledges every frame and
queues chat messages; ``fetch_updates`` drains that queue so the poller can
treat both platforms the same way. Update ids are assigned locally and
continue from the offset the poller asks for, which keeps persisted offsets
monotonic across restarts.
"""

from __future__ import annotations

import asyncio
import json
import socket
import time
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote_plus

import aiohttp

from dashcam_remote.core.errors import HandshakeFailure, SendFailure, TransientFetchFailure
from dashcam_remote.core.types import ChatKind, Platform
from dashcam_remote.log import get_logger
from dashcam_remote.messenger.base import UpdateSource
from dashcam_remote.messenger.models import BotIdentity, Message, Update

logger = get_logger(__name__)

GATEWAY_URL = "https://api.dingtalk.com/v1.0/gateway/connections/open"
CHATBOT_TOPIC = "/v1.0/im/bot/messages/get"
USER_AGENT = "dashcam-remote/0.1"


class DingTalkUpdateSource(UpdateSource):
    """Receives chatbot messages through the DingTalk Stream gateway."""

    def __init__(
        self,
        bot_id: str,
        client_id: str,
        client_secret: str,
        session: aiohttp.ClientSession | None = None,
        gateway_url: str = GATEWAY_URL,
    ):
        super().__init__(bot_id)
        if not client_id or not client_secret:
            raise ValueError(f"DingTalk credentials not configured for bot '{bot_id}'")
        self._client_id = client_id
        self._client_secret = client_secret
        self._gateway_url = gateway_url
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._inbox: asyncio.Queue[Message] = asyncio.Queue()
        self._next_id = 0
        # conversation id -> session webhook of the latest message
        self._webhooks: dict[str, str] = {}

    @property
    def platform(self) -> Platform:
        return Platform.DINGTALK

    async def identify(self) -> BotIdentity:
        try:
            await self._connect()
        except (aiohttp.ClientError, asyncio.TimeoutError, KeyError, ValueError) as e:
            raise HandshakeFailure(f"stream gateway connect failed: {e}") from e
        return BotIdentity(id=self._client_id, username=self._client_id)

    async def fetch_updates(self, offset: int, timeout: int, limit: int) -> list[Update]:
        if self._ws is None or self._ws.closed or self._reader is None or self._reader.done():
            logger.info("dingtalk_reconnecting", bot_id=self.bot_id)
            try:
                await self._connect()
            except (aiohttp.ClientError, asyncio.TimeoutError, KeyError, ValueError) as e:
                raise TransientFetchFailure(f"stream reconnect failed: {e}") from e

        try:
            first = await asyncio.wait_for(self._inbox.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return []

        batch = [first]
        while len(batch) < limit and not self._inbox.empty():
            batch.append(self._inbox.get_nowait())

        start = max(self._next_id, offset)
        self._next_id = start + len(batch)
        return [Update(id=start + i, message=msg) for i, msg in enumerate(batch)]

    async def send_message(self, chat_id: str, text: str) -> None:
        webhook = self._webhooks.get(chat_id)
        if not webhook:
            raise SendFailure(f"no session webhook known for conversation {chat_id}")
        payload = {"msgtype": "text", "text": {"content": text}}
        try:
            async with self._get_session().post(webhook, json=payload) as resp:
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise SendFailure(f"webhook send to {chat_id} failed: {e}") from e
        if isinstance(data, dict) and data.get("errcode", 0) != 0:
            raise SendFailure(f"webhook send to {chat_id} rejected: {data.get('errmsg', data)}")

    async def send_chat_action(self, chat_id: str, action: str) -> None:
        logger.debug("dingtalk_chat_action_ignored", chat_id=chat_id, action=action)

    async def send_photo(self, chat_id: str, path: Path, caption: Optional[str] = None) -> None:
        raise SendFailure("DingTalk photo upload is not supported")

    async def close(self) -> None:
        if self._reader:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        if self._ws and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    # -- stream protocol ---------------------------------------------------

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
            self._owns_session = True
        return self._session

    async def _connect(self) -> None:
        session = self._get_session()
        body = {
            "clientId": self._client_id,
            "clientSecret": self._client_secret,
            "subscriptions": [{"type": "CALLBACK", "topic": CHATBOT_TOPIC}],
            "ua": USER_AGENT,
            "localIp": _local_ip(),
        }
        async with session.post(self._gateway_url, json=body) as resp:
            data = await resp.json(content_type=None)
            if resp.status >= 400:
                raise ValueError(f"gateway returned {resp.status}: {data}")
        endpoint = data["endpoint"]
        ticket = data["ticket"]

        if self._reader:
            self._reader.cancel()
        self._ws = await session.ws_connect(f"{endpoint}?ticket={quote_plus(ticket)}", heartbeat=30)
        self._reader = asyncio.create_task(self._read_frames(self._ws), name=f"dingtalk-stream-{self.bot_id}")
        logger.info("dingtalk_stream_connected", bot_id=self.bot_id)

    async def _read_frames(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for raw in ws:
                if raw.type != aiohttp.WSMsgType.TEXT:
                    if raw.type == aiohttp.WSMsgType.ERROR:
                        logger.warning("dingtalk_stream_error", bot_id=self.bot_id, error=str(ws.exception()))
                        break
                    continue
                try:
                    frame = json.loads(raw.data)
                    await self._handle_frame(ws, frame)
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning("dingtalk_frame_invalid", bot_id=self.bot_id, error=str(e))
        except (aiohttp.ClientError, ConnectionError) as e:
            logger.warning("dingtalk_stream_broken", bot_id=self.bot_id, error=str(e))
        finally:
            # A closed socket is what makes fetch_updates reconnect.
            if not ws.closed:
                await ws.close()
            logger.info("dingtalk_stream_closed", bot_id=self.bot_id)

    async def _handle_frame(self, ws: aiohttp.ClientWebSocketResponse, frame: dict[str, Any]) -> None:
        headers = frame.get("headers", {})
        topic = headers.get("topic", "")
        kind = frame.get("type", "")

        if kind == "SYSTEM":
            if topic == "ping":
                await ws.send_json({"code": 200, "headers": headers, "message": "OK", "data": frame.get("data")})
            elif topic == "disconnect":
                logger.info("dingtalk_stream_disconnect_requested", bot_id=self.bot_id)
                await ws.close()
            return

        await ws.send_json(
            {
                "code": 200,
                "headers": {"contentType": "application/json", "messageId": headers.get("messageId", "")},
                "message": "OK",
                "data": json.dumps({"response": None}),
            }
        )
        if kind == "CALLBACK" and topic == CHATBOT_TOPIC:
            message = self._parse_chatbot_message(json.loads(frame["data"]))
            self._inbox.put_nowait(message)

    def _parse_chatbot_message(self, data: dict[str, Any]) -> Message:
        conversation_id = str(data["conversationId"])
        webhook = data.get("sessionWebhook")
        if webhook:
            self._webhooks[conversation_id] = webhook

        text = None
        if data.get("msgtype", "text") == "text":
            text = (data.get("text") or {}).get("content")

        created_ms = data.get("createAt") or int(time.time() * 1000)
        return Message(
            chat_id=conversation_id,
            chat_kind=ChatKind.PRIVATE if str(data.get("conversationType")) == "1" else ChatKind.GROUP,
            sent_at=int(created_ms) // 1000,
            text=text,
            sender_id=data.get("senderStaffId") or data.get("senderId"),
        )


def _local_ip() -> str:
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError:
        return "127.0.0.1"
