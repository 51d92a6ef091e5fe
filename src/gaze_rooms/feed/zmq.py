import json
import logging
from typing import Any, Final

import zmq
import zmq.asyncio

from ..models.gaze import GazeSample
from ..models.presence import RoomView

logger = logging.getLogger(__name__)


def view_message(view: RoomView, eyes: dict[str, GazeSample], flags: dict[str, bool]) -> dict[str, Any]:
    """JSON-ready snapshot of everything a renderer needs for one frame."""
    return {
        "flags": flags,
        "participants": [
            {
                "userId": p.participant_id,
                "position": p.seat.value,
                "cell": list(p.seat.grid_cell),
                "alignment": p.seat.alignment,
                "eyes": eyes[p.participant_id].to_payload() if p.participant_id in eyes else None,
            }
            for p in view
        ],
    }


class ViewFeed:
    """
    Publishes the room view to an out-of-process renderer over ZMQ PUB/SUB.

    Wire Format (multipart):
    - Topic: b'view'
    - Payload: UTF-8 JSON produced by `view_message`
    """

    _TOPIC: Final[bytes] = b"view"

    def __init__(self, host: str = "tcp://*:5556"):
        """
        Args:
            host: The ZMQ binding address.
        """
        self.host = host

        self._ctx = zmq.asyncio.Context()
        self._sock = self._ctx.socket(zmq.PUB)

        # Renderers only care about the latest frames; ~2 seconds at 30Hz.
        self._sock.setsockopt(zmq.SNDHWM, 30 * 2)
        self._bound = False

    async def start(self) -> None:
        """Bind the publisher socket."""
        try:
            self._sock.bind(self.host)
            self._bound = True
            logger.info(f"ViewFeed bound to {self.host}")
        except zmq.ZMQError as e:
            logger.error(f"Failed to bind ViewFeed to {self.host}: {e}")
            raise

    async def send(self, message: dict[str, Any]) -> None:
        """Non-blocking: ZMQ hands the message to its internal buffer."""
        if not self._bound:
            return
        try:
            await self._sock.send_multipart([self._TOPIC, json.dumps(message).encode("utf-8")])
        except zmq.ZMQError as e:
            # Never let a slow renderer stall the session.
            logger.error(f"ViewFeed publish failed: {e}")

    async def close(self) -> None:
        """Shut down the ZMQ context."""
        logger.info("Closing ViewFeed...")
        self._bound = False
        # Close immediately, don't wait for unsent messages
        self._sock.close(linger=0)
        self._ctx.term()
