import asyncio
import inspect
import logging
from asyncio import Queue
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar, Union

from ..models.events import BroadcastEvent, PresenceEvent
from ..types import EndToken, _END

T = TypeVar("T")
Handler = Callable[[T], Union[None, Awaitable[None]]]
logger = logging.getLogger(__name__)


class _Lane(Generic[T]):
    """A typed queue drained in order by a single consumer task."""

    def __init__(self, name: str):
        self.name = name
        self.queue: Queue[Union[T, EndToken]] = Queue()
        self.handlers: List[Handler] = []
        self.task: Optional[asyncio.Task] = None

    async def run(self) -> None:
        try:
            while True:
                item = await self.queue.get()
                if item is _END:
                    break

                for handler in self.handlers:
                    try:
                        result = handler(item)
                        if inspect.isawaitable(result):
                            await result
                    except Exception:
                        # One bad event must not stop the lane.
                        logger.exception(f"Handler failed on {self.name} event: {item!r}")

                self.queue.task_done()

        except asyncio.CancelledError:
            logger.info(f"Dispatcher lane '{self.name}' cancelled.")


class EventDispatcher:
    """
    Routes backend callbacks through typed queues to their handlers.

    Presence events (join, leave, sync) share one lane so their relative
    delivery order is preserved; gaze broadcasts have their own lane. Each
    lane has exactly one consumer, so handlers never run concurrently with
    others of the same lane and see events strictly in arrival order.
    """

    def __init__(self):
        self._presence: _Lane[PresenceEvent] = _Lane("presence")
        self._broadcast: _Lane[BroadcastEvent] = _Lane("broadcast")

    @property
    def is_running(self) -> bool:
        return self._presence.task is not None

    def on_presence(self, handler: Handler) -> None:
        self._presence.handlers.append(handler)

    def on_broadcast(self, handler: Handler) -> None:
        self._broadcast.handlers.append(handler)

    def put_presence(self, event: PresenceEvent) -> None:
        self._presence.queue.put_nowait(event)

    def put_broadcast(self, event: BroadcastEvent) -> None:
        self._broadcast.queue.put_nowait(event)

    async def start(self) -> None:
        if self.is_running:
            return
        for lane in (self._presence, self._broadcast):
            lane.task = asyncio.create_task(lane.run())
        logger.info("Event dispatcher started.")

    async def drain(self) -> None:
        """Waits until every queued event has been handled."""
        await self._presence.queue.join()
        await self._broadcast.queue.join()

    async def stop(self) -> None:
        if not self.is_running:
            return
        for lane in (self._presence, self._broadcast):
            lane.queue.put_nowait(_END)
        await asyncio.gather(*(lane.task for lane in (self._presence, self._broadcast)), return_exceptions=True)
        for lane in (self._presence, self._broadcast):
            lane.task = None
            # Fresh queues; anything left belongs to a finished session.
            lane.queue = Queue()
        logger.info("Event dispatcher stopped.")
