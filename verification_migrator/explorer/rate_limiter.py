"""Minimum-interval request spacing per explorer URL and API key."""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforces a fixed minimum interval between consecutive requests.

    Callers reserve the next free dispatch slot under a lock and then wait
    for it outside the lock, so concurrent workers queue up in reservation
    order without holding the lock while sleeping.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the rate limiter.

        Args:
            min_interval: Minimum seconds between two dispatches
            clock: Monotonic clock
            sleep: Sleep function used when no cancel event is given
        """
        if min_interval < 0:
            raise ValueError("min_interval must be non-negative")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot: Optional[float] = None

    def reserve(self) -> float:
        """Reserve the next dispatch slot and return how long to wait for it."""
        with self._lock:
            now = self._clock()
            slot = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = slot + self.min_interval
            return slot - now

    def acquire(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """
        Block until this caller may dispatch a request.

        Returns:
            False if the cancel event was set while waiting, True otherwise
        """
        wait = self.reserve()
        if wait <= 0:
            return not (cancel_event is not None and cancel_event.is_set())
        logger.debug(f"Rate limit: waiting {wait:.3f}s")
        if cancel_event is not None:
            return not cancel_event.wait(wait)
        self._sleep(wait)
        return True


_registry: Dict[Tuple[str, str], RateLimiter] = {}
_registry_lock = threading.Lock()


def limiter_for(base_url: str, api_key: str, min_interval: float) -> RateLimiter:
    """
    Get the shared limiter for an explorer URL and API key.

    Clients built for the same URL and key share one limiter, so spacing holds
    across the source and target sides and across worker threads. The first
    registration fixes the interval; a later, stricter interval raises it.
    """
    key = (base_url.rstrip("/"), api_key or "")
    with _registry_lock:
        limiter = _registry.get(key)
        if limiter is None:
            limiter = RateLimiter(min_interval)
            _registry[key] = limiter
        elif min_interval > limiter.min_interval:
            limiter.min_interval = min_interval
        return limiter


def reset_registry() -> None:
    """Forget all shared limiters."""
    with _registry_lock:
        _registry.clear()
