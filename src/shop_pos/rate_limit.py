"""Fixed-window request limiter keyed by client identity.

The limiter is an explicit object rather than a module-level map: the window
length, the request budget, and the number of tracked clients are injected,
and so is the clock. Client entries live in an LRU so the store never grows
past ``max_clients``; the least recently seen client is evicted first.
"""

from __future__ import annotations

import math
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Callable, Optional

from . import log
from .data_manager import RateLimitSettings
from .errors import RequestRejected


Clock = Callable[[], datetime]


@dataclass(frozen=True)
class RateDecision:
    """Outcome of a single limiter check."""

    allowed: bool
    remaining: int
    retry_after_seconds: int = 0


@dataclass
class _ClientWindow:
    count: int
    reset_at: datetime


def _utc_now() -> datetime:
    return datetime.now(UTC)


class RateLimiter:
    """Allow at most ``max_requests`` per client inside each ``window``."""

    def __init__(
        self,
        *,
        window: timedelta,
        max_requests: int,
        max_clients: int,
        clock: Optional[Clock] = None,
    ) -> None:
        if window <= timedelta(0):
            raise ValueError("window must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if max_clients < 1:
            raise ValueError("max_clients must be at least 1")
        self.window = window
        self.max_requests = max_requests
        self.max_clients = max_clients
        self._clock = clock or _utc_now
        self._clients: "OrderedDict[str, _ClientWindow]" = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: RateLimitSettings, *, clock: Optional[Clock] = None) -> "RateLimiter":
        return cls(
            window=timedelta(seconds=settings.window_seconds),
            max_requests=settings.max_requests,
            max_clients=settings.max_clients,
            clock=clock,
        )

    def check(self, client_id: str) -> RateDecision:
        """Count one request for ``client_id`` and report whether it may proceed.

        A rejected request is not counted against the budget.
        """
        now = self._clock()
        with self._lock:
            entry = self._clients.get(client_id)
            if entry is None or now > entry.reset_at:
                entry = _ClientWindow(count=0, reset_at=now + self.window)
                self._clients[client_id] = entry
            self._clients.move_to_end(client_id)
            self._evict()

            if entry.count >= self.max_requests:
                retry_after = max(0, math.ceil((entry.reset_at - now).total_seconds()))
                return RateDecision(allowed=False, remaining=0, retry_after_seconds=retry_after)

            entry.count += 1
            return RateDecision(allowed=True, remaining=self.max_requests - entry.count)

    def enforce(self, client_id: str) -> RateDecision:
        """Like :meth:`check` but raise :class:`RequestRejected` when refused."""
        decision = self.check(client_id)
        if not decision.allowed:
            log.warning(
                "Rate limit exceeded for client '%s'; retry after %ss",
                client_id,
                decision.retry_after_seconds,
            )
            raise RequestRejected(
                "Too many requests. Please try again later.",
                details={"client": client_id, "retry_after": decision.retry_after_seconds},
            )
        return decision

    def _evict(self) -> None:
        while len(self._clients) > self.max_clients:
            evicted, _ = self._clients.popitem(last=False)
            log.debug("Evicted rate limit entry for client '%s'", evicted)

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)
