from abc import ABC, abstractmethod
import asyncio
from asyncio import Queue, Event
from typing import Optional, Union, final

from ..models.gaze import EyePatches, RawGazeFrame
from ..types import EndToken, _END

FrameQueue = Queue[Union[RawGazeFrame, EndToken]]


class GazeProvider(ABC):
    """
    Abstract Base Class for all gaze-tracking providers.

    A provider is a runnable component that predicts the on-screen gaze
    point and puts `RawGazeFrame` objects into an output queue. It must put
    `_END` on the queue when `run` returns so consumers can finish. Eye
    patches for the current frame are served on demand.
    """

    def __init__(self, output_queue: FrameQueue, stop_event: Event):
        self._output_queue = output_queue
        self._stop_event = stop_event

    @property
    def output_queue(self) -> FrameQueue:
        return self._output_queue

    @abstractmethod
    async def run(self) -> None:
        """
        Starts frame acquisition.

        Runs until the `stop_event` is set, then puts `_END` on the queue.
        """
        raise NotImplementedError

    @abstractmethod
    async def eye_patches(self) -> Optional[EyePatches]:
        """Returns the current eye patches, or None when no eyes are detected."""
        raise NotImplementedError

    async def record_calibration(self, x: float, y: float, label: str = "click") -> None:
        """Records that the user looked at screen point (x, y) in pixels."""
        return None

    def _put_end(self) -> None:
        """Puts `_END` on the queue, evicting the oldest frame if it is full."""
        while True:
            try:
                self._output_queue.put_nowait(_END)
                return
            except asyncio.QueueFull:
                self._output_queue.get_nowait()

    @final
    async def stop(self) -> None:
        """
        Signals the provider to stop acquiring frames.

        This is a final method and should not be overridden. Subclasses can
        perform cleanup in their 'run' method's finally block.
        """
        self._stop_event.set()
