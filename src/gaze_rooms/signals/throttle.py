import time
from functools import update_wrapper
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class Throttled(Generic[T]):
    """
    Leading-edge throttle around `fn`.

    The first call runs immediately and opens a suppression window of
    `window_ms`; calls inside the window are dropped (no queueing, no
    trailing replay).
    """

    def __init__(
        self,
        fn: Callable[..., T],
        window_ms: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_ms <= 0:
            raise ValueError("window_ms must be positive.")
        self._fn = fn
        self._window_s = window_ms / 1000.0
        self._clock = clock
        self._suppressed_until: Optional[float] = None
        self.calls = 0
        self.dropped = 0
        update_wrapper(self, fn)

    @property
    def window_ms(self) -> float:
        return self._window_s * 1000.0

    @property
    def is_suppressing(self) -> bool:
        return self._suppressed_until is not None and self._clock() < self._suppressed_until

    def __call__(self, *args: Any, **kwargs: Any) -> Optional[T]:
        now = self._clock()
        if self._suppressed_until is not None and now < self._suppressed_until:
            self.dropped += 1
            return None

        self._suppressed_until = now + self._window_s
        self.calls += 1
        return self._fn(*args, **kwargs)

    def reset(self) -> None:
        """Closes any open suppression window."""
        self._suppressed_until = None


def limit(
    fn: Callable[..., T],
    window_ms: float,
    clock: Optional[Callable[[], float]] = None,
) -> Throttled[T]:
    """Wraps `fn` so it executes at most once per `window_ms`."""
    return Throttled(fn, window_ms, clock or time.monotonic)
