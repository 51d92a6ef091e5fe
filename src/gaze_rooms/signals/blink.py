import logging
import math
import time
from collections import deque
from typing import Callable, Optional

import numpy as np

logger = logging.getLogger(__name__)


def patch_brightness(patch: Optional[np.ndarray], stride: int = 4) -> Optional[float]:
    """
    Mean `(R+G+B)/3` luminance of an eye patch, sampled every `stride` pixels.

    Accepts H x W grayscale or H x W x C (C >= 3) colour patches; any alpha
    channel is ignored. Returns None for a missing or empty patch.
    """
    if patch is None:
        return None

    pixels = np.asarray(patch)
    if pixels.size == 0 or pixels.ndim not in (2, 3):
        return None

    sampled = pixels[::stride, ::stride]
    if sampled.ndim == 3:
        if sampled.shape[-1] < 3:
            return None
        sampled = sampled[..., :3].mean(axis=-1, dtype=np.float64)

    return float(sampled.mean(dtype=np.float64))


class BrightnessBlinkDetector:
    """
    Turns a pair of eye patches into a debounced blink signal.

    Closed lids reflect more light than an open eye under the same
    illumination, so a frame is a raw blink when its brightness exceeds the
    rolling average of recent frames by `threshold_multiplier`. State changes
    are accepted at most once per `debounce_ms`.
    """

    def __init__(
        self,
        window_size: int = 30,
        threshold_multiplier: float = 1.2,
        debounce_ms: float = 100.0,
        stride: int = 4,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            window_size: Capacity of the brightness window (FIFO).
            threshold_multiplier: Factor applied to the rolling average.
            debounce_ms: Minimum hold time between accepted state changes.
            stride: Pixel sampling stride for brightness computation.
            clock: Monotonic time source in seconds, used when `update`
                   is called without an explicit `now`.
        """
        if window_size <= 0:
            raise ValueError("window_size must be a positive integer.")
        if stride <= 0:
            raise ValueError("stride must be a positive integer.")

        self._window: deque[float] = deque(maxlen=window_size)
        self._multiplier = threshold_multiplier
        self._debounce_s = debounce_ms / 1000.0
        self._stride = stride
        self._clock = clock

        self._is_blinking = False
        self._last_change = -math.inf

    @property
    def is_blinking(self) -> bool:
        return self._is_blinking

    @property
    def window_size(self) -> int:
        return len(self._window)

    @property
    def rolling_average(self) -> Optional[float]:
        if not self._window:
            return None
        return sum(self._window) / len(self._window)

    def update(
        self,
        left: Optional[np.ndarray],
        right: Optional[np.ndarray],
        now: Optional[float] = None,
    ) -> bool:
        """
        Feeds one frame and returns the reported blink state.

        A frame with either patch missing is skipped: the window is left
        untouched and the previous state is returned.
        """
        left_brightness = patch_brightness(left, self._stride)
        right_brightness = patch_brightness(right, self._stride)
        if left_brightness is None or right_brightness is None:
            logger.debug("Eye patch missing, skipping frame.")
            return self._is_blinking

        return self.update_brightness((left_brightness + right_brightness) / 2, now)

    def update_brightness(self, brightness: float, now: Optional[float] = None) -> bool:
        """Feeds a precomputed average brightness for one frame."""
        if now is None:
            now = self._clock()

        self._window.append(brightness)
        threshold = self.rolling_average * self._multiplier
        raw_blink = brightness > threshold

        if raw_blink != self._is_blinking and now - self._last_change >= self._debounce_s:
            self._is_blinking = raw_blink
            self._last_change = now
            logger.debug(f"Blink state -> {raw_blink} (brightness={brightness:.1f}, threshold={threshold:.1f})")

        return self._is_blinking

    def reset(self) -> None:
        """Drops the brightness history and the reported state."""
        self._window.clear()
        self._is_blinking = False
        self._last_change = -math.inf
