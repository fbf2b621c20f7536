"""
Display slot scheduling.

Row mode keeps one slot per instrument and re-renders a slot whenever its
price changes. Carousel mode keeps a single slot and rotates it through the
instruments on a timer. Slots are plain SlotView values; drawing them is left
to the host surface (see viewer.py).
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

from okx_ticker.config import DISPLAY_MODE_CAROUSEL, DISPLAY_MODE_ROW, DISPLAY_MODES
from okx_ticker.precision import format_price
from okx_ticker.price_cache import PriceCache, PricePoint

logger = logging.getLogger(__name__)

PENDING_MARK = "⟳"
UNKNOWN_TIME = "?"


@dataclass(frozen=True)
class SlotView:
    """Rendered content of one display slot."""
    symbol: str
    label: str
    text: str
    tooltip: str
    pending: bool


@dataclass
class CarouselState:
    ordered_symbols: tuple
    current_index: int = 0
    interval_ms: int = 5000

    @property
    def current(self) -> Optional[str]:
        if not self.ordered_symbols:
            return None
        return self.ordered_symbols[self.current_index]

    def advance(self) -> Optional[str]:
        """Step to the next symbol, wrapping around. No-op when empty."""
        if not self.ordered_symbols:
            return None
        self.current_index = (self.current_index + 1) % len(self.ordered_symbols)
        return self.current


def format_timestamp(observed_at_ms: int) -> str:
    """Local wall-clock time of an exchange timestamp, "?" if out of range."""
    try:
        return datetime.fromtimestamp(observed_at_ms / 1000).strftime("%H:%M:%S")
    except (ValueError, OverflowError, OSError):
        logger.warning("Timestamp out of range: %r", observed_at_ms)
        return UNKNOWN_TIME


class DisplayScheduler:
    """
    Decides which instruments are visible and what each slot shows.

    Reads prices from the PriceCache only; knows nothing about the feed.
    """

    def __init__(
        self,
        cache: PriceCache,
        symbols: Sequence[str],
        mode: str = DISPLAY_MODE_ROW,
        interval_ms: int = 5000,
        abbreviations: Optional[Mapping[str, str]] = None,
        precisions: Optional[Mapping[str, int]] = None,
    ):
        if mode not in DISPLAY_MODES:
            raise ValueError(f"unknown display mode {mode!r}")
        self.cache = cache
        self.symbols = tuple(symbols)
        self.mode = mode
        self.interval_ms = interval_ms
        self.abbreviations: Dict[str, str] = dict(abbreviations or {})
        self.precisions: Dict[str, int] = dict(precisions or {})

        self.carousel: Optional[CarouselState] = None
        self._slots: Dict[str, SlotView] = {}
        self._lock = threading.Lock()
        self._attached = False

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def label_for(self, symbol: str) -> str:
        return self.abbreviations.get(symbol, symbol)

    def render(self, symbol: str) -> SlotView:
        label = self.label_for(symbol)
        point = self.cache.get(symbol)
        if point is None:
            return SlotView(symbol=symbol, label=label, text=f"{PENDING_MARK} {label}",
                            tooltip="", pending=True)
        price = format_price(point.price, self.precisions.get(symbol))
        return SlotView(
            symbol=symbol,
            label=label,
            text=f"{label}: {price}",
            tooltip=f"Last updated: {format_timestamp(point.observed_at_ms)}",
            pending=False,
        )

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def setup(self) -> None:
        """Create the initial slots and start listening for price changes."""
        with self._lock:
            self._slots.clear()
        if self.mode == DISPLAY_MODE_CAROUSEL:
            self.carousel = CarouselState(self.symbols, 0, self.interval_ms)
            visible = [self.carousel.current] if self.carousel.current is not None else []
        else:
            self.carousel = None
            visible = list(self.symbols)

        rendered = {symbol: self.render(symbol) for symbol in visible}
        with self._lock:
            self._slots.update(rendered)

        if not self._attached:
            self.cache.add_listener(self._on_price)
            self._attached = True

    def teardown(self) -> None:
        """Stop listening and discard every slot."""
        if self._attached:
            self.cache.remove_listener(self._on_price)
            self._attached = False
        with self._lock:
            self._slots.clear()
        self.carousel = None

    def refresh(self, symbol: str) -> bool:
        """Re-render symbol's slot if it is visible."""
        with self._lock:
            if symbol not in self._slots:
                return False
        view = self.render(symbol)
        with self._lock:
            if symbol not in self._slots:
                return False
            self._slots[symbol] = view
        return True

    def _on_price(self, point: PricePoint) -> None:
        self.refresh(point.symbol)

    def rotate(self) -> Optional[str]:
        """Advance the carousel one step; return the newly visible symbol."""
        if self.carousel is None or not self.carousel.ordered_symbols:
            return None
        previous = self.carousel.current
        current = self.carousel.advance()
        if current == previous:
            return current
        view = self.render(current)
        with self._lock:
            self._slots.pop(previous, None)
            self._slots[current] = view
        return current

    def visible_slots(self) -> List[SlotView]:
        """Visible slots in configured instrument order."""
        with self._lock:
            return [self._slots[s] for s in self.symbols if s in self._slots]

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Rotate the carousel every interval until cancelled."""
        if self.mode != DISPLAY_MODE_CAROUSEL:
            return
        interval = self.interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                current = self.rotate()
            except Exception as e:
                logger.warning("Carousel rotation failed: %s", e, exc_info=True)
                continue
            logger.debug("Carousel -> %s", current)
