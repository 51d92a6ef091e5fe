import asyncio
import itertools
import logging
from typing import Any, Mapping, Optional

import aiohttp

from ..models.events import PresenceKind
from .base import PresenceState, RealtimeChannel, RealtimeClient, SubscribeStatus
from .presence import apply_diff, apply_state

logger = logging.getLogger(__name__)


class PhoenixRealtimeClient(RealtimeClient):
    """
    A realtime backend client speaking the Phoenix channel protocol
    (JSON serializer, vsn 1.0.0) over an aiohttp websocket.

    Channel topics are prefixed with `realtime:`; presence and broadcast
    ride on the `presence`, `presence_state`, `presence_diff` and `broadcast`
    events. Reconnection is owned by the caller; this client never retries.
    """

    _VSN = "1.0.0"

    def __init__(
        self,
        url: str,
        api_key: str = "",
        heartbeat_interval_s: float = 25.0,
        join_timeout_s: float = 10.0,
    ):
        """
        Args:
            url: Base websocket URL, e.g. `wss://<host>/realtime/v1`.
            api_key: Sent as the `apikey` query parameter.
            heartbeat_interval_s: Interval between `phoenix` heartbeats.
            join_timeout_s: How long `subscribe` waits for the join reply.
        """
        self._url = url.rstrip("/") + "/websocket"
        self._api_key = api_key
        self._heartbeat_interval_s = heartbeat_interval_s
        self._join_timeout_s = join_timeout_s

        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._refs = itertools.count(1)
        self._pending: dict[str, asyncio.Future] = {}
        self._channels: dict[str, "PhoenixChannel"] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    @property
    def join_timeout_s(self) -> float:
        return self._join_timeout_s

    async def connect(self) -> None:
        if self.is_connected:
            return

        params = {"vsn": self._VSN}
        if self._api_key:
            params["apikey"] = self._api_key

        logger.info(f"Connecting to realtime backend at {self._url}")
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self._url, params=params, heartbeat=None)
        except (aiohttp.ClientError, asyncio.TimeoutError):
            await self._session.close()
            self._session = None
            raise

        for coro in (self._read_loop(), self._heartbeat_loop()):
            task = asyncio.create_task(coro)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        logger.info("Realtime websocket connected.")

    async def close(self) -> None:
        logger.info("Closing realtime connection...")
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._session is not None:
            await self._session.close()
            self._session = None

        self._fail_pending()
        self._channels.clear()

    def channel(self, name: str, presence_key: Optional[str] = None) -> "PhoenixChannel":
        return PhoenixChannel(self, name, presence_key)

    # --- Wire helpers ---

    def _next_ref(self) -> str:
        return str(next(self._refs))

    async def _push(self, topic: str, event: str, payload: Mapping[str, Any], ref: Optional[str] = None) -> str:
        if not self.is_connected:
            raise ConnectionError("Realtime websocket is not connected.")
        ref = ref or self._next_ref()
        await self._ws.send_json({"topic": topic, "event": event, "payload": dict(payload), "ref": ref})
        return ref

    async def _request(self, topic: str, event: str, payload: Mapping[str, Any], timeout: float) -> dict:
        """Pushes a message and waits for its `phx_reply` payload."""
        ref = self._next_ref()
        future = asyncio.get_running_loop().create_future()
        self._pending[ref] = future
        try:
            await self._push(topic, event, payload, ref=ref)
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._pending.pop(ref, None)

    def _fail_pending(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ConnectionError("Realtime connection closed."))
        self._pending.clear()

    async def _read_loop(self) -> None:
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        self._route(msg.json())
                    except Exception:
                        logger.exception("Failed to handle realtime message.")
                elif msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED):
                    break
        except asyncio.CancelledError:
            raise
        finally:
            logger.warning("Realtime websocket read loop ended.")
            self._fail_pending()
            for channel in list(self._channels.values()):
                channel._on_closed()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval_s)
            try:
                await self._push("phoenix", "heartbeat", {})
            except (ConnectionError, aiohttp.ClientError) as e:
                logger.error(f"Heartbeat failed: {e}")
                return

    def _route(self, message: Mapping[str, Any]) -> None:
        topic = message.get("topic")
        event = message.get("event")
        payload = message.get("payload") or {}
        ref = message.get("ref")

        if event == "phx_reply" and ref in self._pending:
            future = self._pending[ref]
            if not future.done():
                future.set_result(payload)
            return

        channel = self._channels.get(topic)
        if channel is None:
            logger.debug(f"Dropping '{event}' for unknown topic {topic}")
            return
        channel._handle(event, payload)


class PhoenixChannel(RealtimeChannel):

    def __init__(self, client: PhoenixRealtimeClient, name: str, presence_key: Optional[str] = None):
        super().__init__(name, presence_key)
        self._client = client
        self.topic = f"realtime:{name}"
        self._state: PresenceState = {}
        self._joined = False

    async def subscribe(self) -> SubscribeStatus:
        config = {
            "broadcast": {"ack": False, "self": False},
            "presence": {"key": self.presence_key or ""},
        }
        self._client._channels[self.topic] = self
        try:
            reply = await self._client._request(
                self.topic, "phx_join", {"config": config}, timeout=self._client.join_timeout_s
            )
        except asyncio.TimeoutError:
            logger.error(f"Join of '{self.name}' timed out.")
            self._client._channels.pop(self.topic, None)
            return SubscribeStatus.TIMED_OUT
        except ConnectionError as e:
            logger.error(f"Join of '{self.name}' failed: {e}")
            self._client._channels.pop(self.topic, None)
            return SubscribeStatus.CLOSED

        if reply.get("status") != "ok":
            logger.error(f"Join of '{self.name}' rejected: {reply.get('response')}")
            self._client._channels.pop(self.topic, None)
            return SubscribeStatus.CHANNEL_ERROR

        self._joined = True
        return SubscribeStatus.SUBSCRIBED

    async def track(self, payload: Mapping[str, Any]) -> None:
        await self._client._push(
            self.topic, "presence", {"type": "presence", "event": "track", "payload": dict(payload)}
        )

    def presence_state(self) -> PresenceState:
        return {key: [dict(meta) for meta in metas] for key, metas in self._state.items()}

    async def send(self, event: str, payload: Mapping[str, Any]) -> None:
        if not self._joined:
            return
        await self._client._push(
            self.topic, "broadcast", {"type": "broadcast", "event": event, "payload": dict(payload)}
        )

    async def unsubscribe(self) -> None:
        if not self._joined:
            return
        self._joined = False
        self._client._channels.pop(self.topic, None)
        self._state = {}
        if self._client.is_connected:
            await self._client._push(self.topic, "phx_leave", {})

    def _on_closed(self) -> None:
        self._joined = False

    def _handle(self, event: str, payload: Mapping[str, Any]) -> None:
        if event == "presence_state":
            self._apply(*apply_state(self._state, payload))
        elif event == "presence_diff":
            self._apply(*apply_diff(self._state, payload))
        elif event == "broadcast":
            self._emit_broadcast(payload.get("event", ""), payload.get("payload") or {})
        elif event in ("phx_error", "phx_close"):
            logger.warning(f"Channel '{self.name}' received {event}.")
            self._joined = False

    def _apply(self, state: PresenceState, joined: list[str], left: list[str]) -> None:
        self._state = state
        for key in joined:
            self._emit_presence(PresenceKind.JOIN, key)
        for key in left:
            self._emit_presence(PresenceKind.LEAVE, key)
        self._emit_presence(PresenceKind.SYNC)
