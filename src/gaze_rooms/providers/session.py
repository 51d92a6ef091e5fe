import asyncio
import logging
from typing import Callable, ClassVar, Optional

from ..errors import ProviderBusyError
from .base import FrameQueue, GazeProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[FrameQueue, asyncio.Event], GazeProvider]


class ProviderSession:
    """
    Process-wide, single-owner lease on the gaze-tracking provider.

    Only one session may be active at a time (the camera is exclusive).
    `release` is idempotent and always stops the provider task, so it is
    safe on every exit path.
    """

    _active: ClassVar[Optional["ProviderSession"]] = None

    def __init__(self, factory: ProviderFactory, queue_size: int = 256):
        self._factory = factory
        self._queue_size = queue_size
        self._provider: Optional[GazeProvider] = None
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def active(cls) -> Optional["ProviderSession"]:
        return cls._active

    @property
    def provider(self) -> Optional[GazeProvider]:
        return self._provider

    @property
    def is_active(self) -> bool:
        return ProviderSession._active is self

    async def acquire(self) -> GazeProvider:
        if ProviderSession._active is self:
            return self._provider
        if ProviderSession._active is not None:
            raise ProviderBusyError("A gaze-tracking session is already active in this process.")

        ProviderSession._active = self
        try:
            queue: FrameQueue = asyncio.Queue(maxsize=self._queue_size)
            self._provider = self._factory(queue, asyncio.Event())
            self._task = asyncio.create_task(self._provider.run())
        except Exception:
            ProviderSession._active = None
            self._provider = None
            raise

        logger.info(f"Gaze provider session started ({type(self._provider).__name__}).")
        return self._provider

    async def release(self) -> None:
        if ProviderSession._active is not self:
            return

        logger.info("Releasing gaze provider session...")
        try:
            if self._provider is not None:
                await self._provider.stop()
            if self._task is not None:
                try:
                    await asyncio.wait_for(self._task, timeout=5.0)
                except asyncio.TimeoutError:
                    logger.warning("Provider did not stop in time. Cancelling.")
                    self._task.cancel()
                    await asyncio.gather(self._task, return_exceptions=True)
                except Exception:
                    logger.exception("Provider task ended with an error.")
        finally:
            self._task = None
            self._provider = None
            ProviderSession._active = None
            logger.info("Gaze provider session released.")

    async def __aenter__(self) -> GazeProvider:
        return await self.acquire()

    async def __aexit__(self, *exc) -> None:
        await self.release()
