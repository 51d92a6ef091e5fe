import time
import logging
from typing import Callable


class ThrottledLogger:
    """
    Rate-limits a noisy warning on a hot path.

    Repeated calls inside `interval_sec` are only counted; the next emitted
    record carries the number of occurrences it stands for.
    """

    def __init__(
        self,
        logger: logging.Logger,
        interval_sec: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._logger = logger
        self._interval = interval_sec
        self._clock = clock
        self._last_log_time: float | None = None
        self._counter = 0

    @property
    def pending(self) -> int:
        """Occurrences counted since the last emitted record."""
        return self._counter

    def warning(self, message: str, *args, **kwargs) -> bool:
        self._counter += 1
        now = self._clock()

        if self._last_log_time is None or now - self._last_log_time >= self._interval:
            self._logger.warning("[%d] %s", self._counter, message % args if args else message, **kwargs)
            self._last_log_time = now
            self._counter = 0
            return True
        return False

    def reset(self) -> None:
        self._last_log_time = None
        self._counter = 0
