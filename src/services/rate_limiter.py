# src/services/rate_limiter.py

"""Minimum-interval gate for outbound calls, keyed by service name."""

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger("price_sync.rate_limiter")


class RateLimiter:
    """Spaces calls to each external service by a minimum interval.

    One instance is constructed per process and handed to every client
    that talks to a rate-limited origin.  Services are tracked
    independently, so waiting on ``edhrec`` never delays ``scryfall``.
    Calls are serialised in arrival order; there is no fairness beyond
    that.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._clock = clock
        self._sleep = sleep or time.sleep
        self._last_request_at: dict[str, float] = {}
        self._lock = threading.Lock()

    def throttle(
        self, service_name: str, min_interval_ms: int,
    ) -> float:
        """Block until ``min_interval_ms`` has passed since the last call.

        Records the current time as the service's last request time
        whether or not a wait happened.  Returns the seconds slept.
        """
        slept = 0.0
        with self._lock:
            last = self._last_request_at.get(service_name)
            if last is not None:
                elapsed_ms = (self._clock() - last) * 1000
                remaining_ms = min_interval_ms - elapsed_ms
                if remaining_ms > 0:
                    slept = remaining_ms / 1000
                    logger.debug(
                        "[%s] Throttling for %.0fms",
                        service_name,
                        remaining_ms,
                    )
                    self._sleep(slept)
            self._last_request_at[service_name] = self._clock()
        return slept

    def last_request_time_for(self, service_name: str) -> float | None:
        """Clock reading of the service's last recorded call, if any."""
        with self._lock:
            return self._last_request_at.get(service_name)

    def clear_all(self) -> int:
        """Forget every service's state.

        Returns the number of services that were tracked.
        """
        with self._lock:
            count = len(self._last_request_at)
            self._last_request_at.clear()
        logger.info("Rate limiter state cleared (%d services)", count)
        return count
