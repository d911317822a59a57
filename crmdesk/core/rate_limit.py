"""Per-caller request throttling.

Handlers depend on the ``RateLimiter`` protocol only, so the in-process
fixed-window limiter can be replaced by a shared-cache implementation when the
API runs on more than one instance.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from threading import Lock
from typing import Protocol

from fastapi import Depends

from crmdesk.core.auth import RequestUserContext, get_current_user_context
from crmdesk.core.config import get_settings
from crmdesk.core.errors import RateLimited

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    def allow(self, caller_id: str) -> bool: ...


class FixedWindowRateLimiter:
    """Allow ``limit`` calls per caller in each ``window_seconds`` bucket."""

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._counts: dict[str, tuple[int, int]] = {}
        self._lock = Lock()

    def _window(self) -> int:
        return int(self._clock() // self.window_seconds)

    def allow(self, caller_id: str) -> bool:
        window = self._window()
        with self._lock:
            current_window, count = self._counts.get(caller_id, (window, 0))
            if current_window != window:
                count = 0
            if count >= self.limit:
                self._counts[caller_id] = (window, count)
                return False
            self._counts[caller_id] = (window, count + 1)
            # Drop callers whose window has passed.
            if len(self._counts) > 10_000:
                self._counts = {key: value for key, value in self._counts.items() if value[0] == window}
            return True

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()


_default_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter built from settings; overridable as a dependency."""

    global _default_limiter
    if _default_limiter is None:
        settings = get_settings()
        _default_limiter = FixedWindowRateLimiter(
            limit=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    return _default_limiter


def enforce_rate_limit(
    context: RequestUserContext = Depends(get_current_user_context),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> RequestUserContext:
    if not limiter.allow(str(context.user_id)):
        logger.warning("Rate limit exceeded for user %s", context.user_id)
        raise RateLimited()
    return context
