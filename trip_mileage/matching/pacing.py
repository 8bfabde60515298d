"""Fixed-interval pacing between successive map-matching calls."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from ..config import MATCH_CALL_DELAY_SECONDS

__all__ = ["CallPacer"]

LOGGER = logging.getLogger(__name__)


class CallPacer:
    """Keep at least ``interval`` seconds between consecutive calls.

    The first call after construction or :meth:`reset` never waits. This is a
    plain delay, not a token bucket; it only spaces calls issued from one
    batch run. ``clock`` and ``sleep`` default to :func:`time.monotonic` and
    :func:`time.sleep`, looked up when used.
    """

    def __init__(
        self,
        interval: float = MATCH_CALL_DELAY_SECONDS,
        *,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self._interval = interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_call: float | None = None

    @property
    def interval(self) -> float:
        return self._interval

    def _now(self) -> float:
        return self._clock() if self._clock is not None else time.monotonic()

    def wait(self) -> float:
        """Block until the next call is allowed; return the seconds slept."""

        with self._lock:
            waited = 0.0
            if self._last_call is not None and self._interval > 0:
                remaining = self._interval - (self._now() - self._last_call)
                if remaining > 0:
                    LOGGER.debug("Pacing matcher call: sleeping %.3fs", remaining)
                    if self._sleep is not None:
                        self._sleep(remaining)
                    else:
                        time.sleep(remaining)
                    waited = remaining
            self._last_call = self._now()
            return waited

    def reset(self) -> None:
        """Forget the previous call so the next one goes out immediately."""

        with self._lock:
            self._last_call = None
