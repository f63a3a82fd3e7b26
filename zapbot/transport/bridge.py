"""WebSocket bridge transport.

Talks JSON to a sidecar process that implements the messaging protocol.

Frames sent by zapbot::

    {"id": "<uuid>", "method": "sendMessage", "params": {...}}

Frames received::

    {"id": "<uuid>", "result": {...}}          # reply to a call
    {"id": "<uuid>", "error": "message"}       # failed call
    {"events": {"messages.upsert": {...}}}     # event batch

Binary content (stickers, images) travels base64-encoded.
"""

import asyncio
import base64
import json
import uuid
from typing import Any

import aiohttp
from loguru import logger

from zapbot.errors import TransportError
from zapbot.session.cache import GroupMetadataCache
from zapbot.session.events import CONNECTION_UPDATE
from zapbot.transport.base import BatchCallback, Session, Transport

_BINARY_FIELDS = ("sticker", "image", "video", "audio", "document")


def encode_content(content: dict[str, Any]) -> dict[str, Any]:
    """Base64-encode binary fields of an outbound message."""
    encoded = dict(content)
    for key in _BINARY_FIELDS:
        value = encoded.get(key)
        if isinstance(value, (bytes, bytearray)):
            encoded[key] = {"base64": base64.b64encode(value).decode("ascii")}
    return encoded


def encode_options(options: dict[str, Any]) -> dict[str, Any]:
    """Replace a quoted WAMessage with its raw payload."""
    encoded = dict(options)
    quoted = encoded.get("quoted")
    if quoted is not None and hasattr(quoted, "raw"):
        encoded["quoted"] = quoted.raw
    return encoded


class BridgeSession(Session):
    """One WebSocket connection to the bridge."""

    def __init__(
        self,
        http: aiohttp.ClientSession,
        ws: aiohttp.ClientWebSocketResponse,
        group_cache: GroupMetadataCache | None = None,
        call_timeout: float = 30.0,
    ):
        self._http = http
        self._ws = ws
        self._group_cache = group_cache
        self._call_timeout = call_timeout
        self._callback: BatchCallback | None = None
        self._pending: dict[str, asyncio.Future] = {}
        self._batches: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._reader: asyncio.Task | None = None
        self._dispatcher: asyncio.Task | None = None
        self._closed = False

    def on_events(self, callback: BatchCallback) -> None:
        self._callback = callback
        if self._reader is None:
            self._reader = asyncio.create_task(self._read_loop())
            self._dispatcher = asyncio.create_task(self._dispatch_loop())

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _read_loop(self) -> None:
        reason = "socket closed"
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = f"socket error: {self._ws.exception()}"
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = f"read failed: {e}"
        finally:
            self._fail_pending(TransportError(reason))

        if not self._closed:
            logger.warning(f"Bridge connection lost ({reason})")
            await self._batches.put({CONNECTION_UPDATE: {"connection": "close", "lastDisconnect": {"error": reason}}})

    def _handle_frame(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Bridge sent invalid JSON: {raw[:200]}")
            return

        if "events" in frame:
            if isinstance(frame["events"], dict):
                self._batches.put_nowait(frame["events"])
            return

        future = self._pending.pop(frame.get("id", ""), None)
        if future is None or future.done():
            return
        if frame.get("error"):
            future.set_exception(TransportError(str(frame["error"])))
        else:
            future.set_result(frame.get("result"))

    async def _dispatch_loop(self) -> None:
        while True:
            batch = await self._batches.get()
            if self._callback is None:
                continue
            try:
                await self._callback(batch)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Event batch callback failed: {e}")

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _call(self, method: str, params: dict[str, Any]) -> Any:
        if self._closed or self._ws.closed:
            raise TransportError("Bridge session is closed")

        call_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[call_id] = future
        try:
            await self._ws.send_json({"id": call_id, "method": method, "params": params})
            return await asyncio.wait_for(future, timeout=self._call_timeout)
        except (aiohttp.ClientError, ConnectionError) as e:
            raise TransportError(f"{method} failed: {e}") from e
        finally:
            self._pending.pop(call_id, None)

    async def send_message(self, jid: str, content: dict[str, Any], **options: Any) -> dict[str, Any]:
        result = await self._call("sendMessage", {
            "jid": jid,
            "content": encode_content(content),
            "options": encode_options(options),
        })
        return result or {}

    async def group_metadata(self, jid: str) -> dict[str, Any]:
        if self._group_cache is not None:
            cached = self._group_cache.get(jid)
            if cached is not None:
                return cached
        metadata = await self._call("groupMetadata", {"jid": jid}) or {}
        if self._group_cache is not None:
            self._group_cache.set(jid, metadata)
        return metadata

    async def read_messages(self, keys: list[dict[str, Any]]) -> None:
        await self._call("readMessages", {"keys": keys})

    async def download_media(self, message: dict[str, Any], media_type: str) -> bytes:
        result = await self._call("downloadMedia", {"message": message, "type": media_type}) or {}
        data = result.get("data")
        if not data:
            raise TransportError("Bridge returned no media data")
        return base64.b64decode(data)

    async def close(self) -> None:
        self._closed = True
        for task in (self._reader, self._dispatcher):
            if task:
                task.cancel()
        self._fail_pending(TransportError("Session closed"))
        await self._ws.close()
        await self._http.close()


class BridgeTransport(Transport):
    """Connects to the bridge and authenticates with stored credentials."""

    def __init__(
        self,
        url: str,
        heartbeat: float = 30.0,
        group_cache: GroupMetadataCache | None = None,
    ):
        self.url = url
        self.heartbeat = heartbeat
        self.group_cache = group_cache

    async def establish_session(self, credentials: dict[str, Any]) -> Session:
        http = aiohttp.ClientSession()
        try:
            ws = await http.ws_connect(self.url, heartbeat=self.heartbeat)
            await ws.send_json({"id": uuid.uuid4().hex, "method": "auth", "params": {"creds": credentials}})
        except (aiohttp.ClientError, OSError) as e:
            await http.close()
            raise TransportError(f"Could not connect to bridge at {self.url}: {e}") from e

        logger.info(f"Connected to bridge at {self.url}")
        return BridgeSession(http, ws, group_cache=self.group_cache)
