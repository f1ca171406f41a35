"""Best-effort sale-completed notifications.

Dependent views (the admin leaderboard, an employee dashboard) subscribe to a
:class:`SaleEventBus` and are told about each committed sale. Delivery is not
guaranteed: a failing listener is logged and skipped, and it never affects
the commit that triggered it.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, List

from . import log


SaleListener = Callable[[Any], None]


class SaleEventBus:
    """Fan-out of committed sales to registered listeners."""

    def __init__(self) -> None:
        self._listeners: List[SaleListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: SaleListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, sale: Any) -> int:
        """Deliver ``sale`` to every listener; return how many succeeded."""
        with self._lock:
            listeners = list(self._listeners)

        delivered = 0
        for listener in listeners:
            try:
                listener(sale)
            except Exception:
                log.exception("Sale-completed listener %r failed", listener)
                continue
            delivered += 1
        return delivered

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
