"""
Advisory client-side throttle keyed by ``rate_key``.

This is not a security boundary; it keeps a UI from firing the same call
(search-as-you-type, double clicks) faster than a window allows.
"""
import logging
import time
from typing import Callable, Dict, Optional

from .errors import RateLimitedError
from .types import RateLimitRecord

logger = logging.getLogger("construction_client.rate_limit")

Clock = Callable[[], float]


class RateLimiter:
    """Rejects a call made less than ``window_ms`` after the previous one."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or time.monotonic
        self._records: Dict[str, RateLimitRecord] = {}

    def check(self, key: str, window_ms: float) -> None:
        """
        Let the call through and record it, or raise RateLimitedError.

        Args:
            key: Throttle key
            window_ms: Minimum spacing between calls, in milliseconds

        Raises:
            RateLimitedError: The previous call was less than window_ms ago
        """
        now = self._clock()
        record = self._records.get(key)
        if record is not None:
            elapsed_ms = (now - record.last_invoked_at) * 1000.0
            if elapsed_ms < window_ms:
                remaining = window_ms - elapsed_ms
                logger.debug(f"RateLimiter.check: key={key} rejected, {remaining:.0f}ms left")
                raise RateLimitedError(key, remaining)

        self._records[key] = RateLimitRecord(key=key, last_invoked_at=now)

    def last_invoked_at(self, key: str) -> Optional[float]:
        record = self._records.get(key)
        return record.last_invoked_at if record else None

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key, or every key."""
        if key is None:
            self._records.clear()
        else:
            self._records.pop(key, None)
