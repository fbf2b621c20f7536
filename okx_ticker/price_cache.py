"""
Latest-price store shared by the feed and the display.

One immutable PricePoint per instrument. Writers replace the whole point, so
a reader always sees a point some writer fully built. Writes are
last-arrival-wins: a tick with an older embedded timestamp still replaces a
newer one.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricePoint:
    """Last observed price for one instrument."""
    symbol: str
    price: str             # kept as the exchange's decimal string
    observed_at_ms: int    # exchange timestamp, epoch millis


PriceListener = Callable[[PricePoint], None]


class PriceCache:
    """
    Thread-safe map of instrument id -> PricePoint.

    Listeners registered with add_listener() are called with every new point,
    outside the lock, so they may read the cache again.
    """

    def __init__(self):
        self._points: Dict[str, PricePoint] = {}
        self._lock = threading.Lock()
        self._listeners: List[PriceListener] = []

    def set(self, symbol: str, price: str, observed_at_ms: int) -> PricePoint:
        """Store a new point for symbol, replacing any previous one."""
        point = PricePoint(symbol=symbol, price=price, observed_at_ms=int(observed_at_ms))
        with self._lock:
            self._points[symbol] = point
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(point)
            except Exception as e:
                logger.warning("Price listener error for %s: %s", symbol, e, exc_info=True)
        return point

    def get(self, symbol: str) -> Optional[PricePoint]:
        with self._lock:
            return self._points.get(symbol)

    def snapshot(self) -> Dict[str, PricePoint]:
        """Copy of all current points."""
        with self._lock:
            return dict(self._points)

    def clear(self) -> None:
        with self._lock:
            self._points.clear()

    def add_listener(self, listener: PriceListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: PriceListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)

    def __contains__(self, symbol: object) -> bool:
        with self._lock:
            return symbol in self._points
