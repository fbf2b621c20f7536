"""
Ticker session lifecycle.

Controller owns everything a session needs: the price cache, the REST client,
the feed connection, the display scheduler and their background tasks. Only
one session runs at a time; start() while running and stop() while idle are
no-ops.

Session bootstrap order:
    abbreviations -> precision lookup -> display slots -> REST snapshot -> feed
"""

import asyncio
import logging
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

from okx_ticker.abbreviation import build_abbreviations
from okx_ticker.config import TickerConfig
from okx_ticker.display import DisplayScheduler, SlotView
from okx_ticker.feed import FeedConnection, FeedStatus
from okx_ticker.precision import PrecisionLookupError, PrecisionResolver
from okx_ticker.price_cache import PriceCache, PricePoint
from okx_ticker.rest_client import OKXRestClient, seed_prices

logger = logging.getLogger(__name__)


class Controller:
    """
    Start/stop entry point for the ticker.

    Args:
        config:              Ticker options.
        rest_client:         REST client to use; one is created per session if None.
        feed_factory:        Callable building the FeedConnection
                             (symbols, cache, on_terminal_failure=...).
        on_terminal_failure: Called when the feed gives up reconnecting.
    """

    def __init__(
        self,
        config: TickerConfig,
        rest_client: Optional[OKXRestClient] = None,
        feed_factory: Callable[..., FeedConnection] = FeedConnection,
        on_terminal_failure: Optional[Callable[[], None]] = None,
    ):
        self.config = config
        self.cache = PriceCache()
        self.on_terminal_failure = on_terminal_failure
        self._feed_factory = feed_factory
        self._injected_client = rest_client
        self._client: Optional[OKXRestClient] = None

        self.feed: Optional[FeedConnection] = None
        self.display: Optional[DisplayScheduler] = None
        self._abbreviations: Dict[str, str] = {}
        self._precisions: Dict[str, int] = {}

        self._session_task: Optional[asyncio.Task] = None
        self._tasks: List[asyncio.Task] = []
        self.active = False
        self.stopping = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Begin a session. Network work continues in the background.

        Refused while a session is active or a stop() is still tearing down.
        """
        if self.active or self.stopping:
            return False
        self.active = True
        self._client = self._injected_client or OKXRestClient()
        self._session_task = asyncio.create_task(self._bootstrap(), name="ticker-session")
        logger.info("Ticker session started for %s", ", ".join(self.config.pairs))
        return True

    async def stop(self) -> bool:
        """End the session: cancel timers, close the feed, clear prices."""
        if not self.active:
            return False
        self.active = False
        self.stopping = True
        try:
            tasks = [t for t in [self._session_task] + self._tasks if t is not None]
            self._session_task = None
            self._tasks = []
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

            if self.feed is not None:
                await self.feed.stop()
                self.feed = None
            if self.display is not None:
                self.display.teardown()
                self.display = None
            if self._client is not None:
                if self._client is not self._injected_client:
                    await self._client.close()
                self._client = None

            self.cache.clear()
            self._abbreviations = {}
            self._precisions = {}
        finally:
            self.stopping = False
        logger.info("Ticker session stopped")
        return True

    async def toggle(self) -> bool:
        """Start if idle, stop if running. Returns the new active flag."""
        if self.active:
            await self.stop()
        else:
            self.start()
        return self.active

    async def restart(self) -> None:
        await self.stop()
        self.start()

    async def _bootstrap(self) -> None:
        config = self.config
        try:
            if config.abbreviation_enabled:
                self._abbreviations = build_abbreviations(config.pairs)
                if not self._abbreviations and config.pairs:
                    logger.info("Cannot abbreviate %s, showing full ids", config.pairs)

            try:
                self._precisions = await PrecisionResolver(self._client).resolve(config.pairs)
            except PrecisionLookupError as e:
                logger.warning("Precision lookup failed, prices shown unformatted: %s", e)
                self._precisions = {}

            self.display = DisplayScheduler(
                self.cache,
                config.pairs,
                mode=config.display_mode,
                interval_ms=config.carousel_interval_ms,
                abbreviations=self._abbreviations,
                precisions=self._precisions,
            )
            self.display.setup()

            if not config.pairs:
                logger.warning("No instruments configured, not connecting")
                return

            await seed_prices(self._client, config.pairs, self.cache)

            self.feed = self._feed_factory(
                config.pairs, self.cache, on_terminal_failure=self._on_feed_failed
            )
            self.feed.start()

            if config.is_carousel:
                self._spawn(self.display.run(), "carousel")
            if config.snapshot_refresh_ms > 0:
                self._spawn(self._refresh_loop(config.snapshot_refresh_ms / 1000), "snapshot-refresh")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Ticker session bootstrap failed: %s", e, exc_info=True)

    def _spawn(self, coro, name: str) -> None:
        self._tasks.append(asyncio.create_task(coro, name=name))

    async def _refresh_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await seed_prices(self._client, self.config.pairs, self.cache)
            except Exception as e:
                logger.warning("Snapshot refresh failed: %s", e)

    def _on_feed_failed(self) -> None:
        logger.error("Price feed stopped after repeated failures; restart the ticker to retry")
        if self.on_terminal_failure is not None:
            self.on_terminal_failure()

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    def get_price(self, symbol: str) -> Optional[PricePoint]:
        return self.cache.get(symbol)

    @property
    def abbreviations(self) -> Mapping[str, str]:
        return MappingProxyType(dict(self._abbreviations))

    @property
    def precisions(self) -> Mapping[str, int]:
        return MappingProxyType(dict(self._precisions))

    def visible_slots(self) -> List[SlotView]:
        if self.display is None:
            return []
        return self.display.visible_slots()

    def feed_status(self) -> Optional[FeedStatus]:
        if self.feed is None:
            return None
        return self.feed.status()
