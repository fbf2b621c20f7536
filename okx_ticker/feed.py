"""
OKX candle stream connection.

One websocket to the OKX business endpoint carrying a single combined
"candle1s" subscription for every tracked instrument. Each candle row's close
price is written into the PriceCache.

State machine:
    DISCONNECTED -> CONNECTING -> SUBSCRIBED -> DISCONNECTED (on drop)
    stop(): any state -> CLOSING -> DISCONNECTED, no reconnect

Unexpected closes are retried with exponential backoff (1s, 2s, 4s, 8s, 16s).
After max_attempts consecutive failures the feed gives up, marks itself
failed and calls on_terminal_failure once; start() resets it.

Inbound messages:
    "pong"                                   keepalive reply, ignored
    {"event": "subscribe", ...}              subscription ack, ignored
    {"event": "error", "code", "msg"}        logged
    {"arg": {"channel", "instId"},
     "data": [[ts, o, h, l, c, ...], ...]}   close price (index 4) -> cache
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Union

import websockets
from websockets.protocol import State

from okx_ticker.price_cache import PriceCache

logger = logging.getLogger(__name__)

WS_URL = "wss://ws.okx.com:8443/ws/v5/business"
CANDLE_CHANNEL = "candle1s"

PING_MESSAGE = "ping"
PONG_MESSAGE = "pong"

DEFAULT_PING_INTERVAL = 30.0     # seconds
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY = 1.0         # seconds; doubles per attempt
OPEN_TIMEOUT = 10.0

# Candle row layout: [ts, open, high, low, close, vol, ...]
ROW_TS = 0
ROW_CLOSE = 4


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    CLOSING = "closing"


@dataclass(frozen=True)
class FeedStatus:
    """Point-in-time view of the feed for status displays."""
    state: ConnectionState
    reconnect_attempt: int
    failed: bool
    message_count: int
    last_message_time: float


def build_subscribe_message(symbols: Sequence[str], channel: str = CANDLE_CHANNEL) -> dict:
    return {
        "op": "subscribe",
        "args": [{"channel": channel, "instId": inst_id} for inst_id in symbols],
    }


def backoff_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY) -> float:
    """Delay before reconnect attempt number `attempt` (1-based)."""
    return base_delay * (2 ** (attempt - 1))


class FeedConnection:
    """
    Owns the streaming connection for one ticker session.

    Args:
        symbols:             Instrument ids to subscribe to.
        cache:               PriceCache receiving close prices.
        url:                 Websocket endpoint.
        max_attempts:        Reconnect attempts before giving up.
        base_delay:          First backoff delay in seconds.
        ping_interval:       Seconds between "ping" keepalives.
        on_terminal_failure: Called once when reconnects are exhausted.
        connect:             Websocket connect factory (websockets.connect).
        sleep:               Coroutine used for backoff waits (asyncio.sleep).
    """

    def __init__(
        self,
        symbols: Sequence[str],
        cache: PriceCache,
        url: str = WS_URL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        ping_interval: float = DEFAULT_PING_INTERVAL,
        on_terminal_failure: Optional[Callable[[], None]] = None,
        connect: Optional[Callable[..., Any]] = None,
        sleep: Optional[Callable[[float], Any]] = None,
    ):
        self.symbols: List[str] = list(symbols)
        self.cache = cache
        self.url = url
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.ping_interval = ping_interval
        self.on_terminal_failure = on_terminal_failure
        self._connect = connect or websockets.connect
        self._sleep = sleep or asyncio.sleep

        self.state = ConnectionState.DISCONNECTED
        self.reconnect_attempt = 0
        self.failed = False
        self.message_count = 0
        self.last_message_time = 0.0

        self._running = False
        self._ws = None
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> bool:
        """Schedule the connection loop on the running event loop."""
        if self._task is not None and not self._task.done():
            return False
        self._task = asyncio.create_task(self.run(), name="okx-feed")
        return True

    async def stop(self) -> None:
        """Close the connection and suppress reconnection.

        Returns once the connection task has finished, so no message is
        decoded into the cache afterwards.
        """
        self._running = False
        if self.state is not ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.CLOSING)

        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("Feed task ended with error during stop: %s", e)

        self._ws = None
        self._set_state(ConnectionState.DISCONNECTED)

    def status(self) -> FeedStatus:
        return FeedStatus(
            state=self.state,
            reconnect_attempt=self.reconnect_attempt,
            failed=self.failed,
            message_count=self.message_count,
            last_message_time=self.last_message_time,
        )

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self.state:
            logger.debug("Feed state %s -> %s", self.state.value, state.value)
            self.state = state

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Connect, subscribe and consume until stopped or retries run out."""
        self._running = True
        self.reconnect_attempt = 0
        self.failed = False

        while self._running:
            self._set_state(ConnectionState.CONNECTING)
            try:
                async with self._connect(self.url, ping_interval=None,
                                         open_timeout=OPEN_TIMEOUT) as ws:
                    self._ws = ws
                    await ws.send(json.dumps(build_subscribe_message(self.symbols)))
                    self.reconnect_attempt = 0
                    self._set_state(ConnectionState.SUBSCRIBED)
                    logger.info("Subscribed to %s for %d instruments",
                                CANDLE_CHANNEL, len(self.symbols))

                    keepalive = asyncio.create_task(self._keepalive(ws), name="okx-keepalive")
                    try:
                        async for message in ws:
                            if not self._running:
                                break
                            self.handle_message(message)
                    finally:
                        keepalive.cancel()
                        try:
                            await keepalive
                        except asyncio.CancelledError:
                            pass

                if self._running:
                    logger.warning("Feed connection closed by server")
            except websockets.exceptions.ConnectionClosed as e:
                if self._running:
                    logger.warning("Feed connection dropped: %s", e)
            except Exception as e:
                if self._running:
                    logger.warning("Feed connection error: %r", e)
            finally:
                self._ws = None

            if not self._running:
                break

            self._set_state(ConnectionState.DISCONNECTED)
            delay = self._next_backoff()
            if delay is None:
                self._give_up()
                break
            logger.info("Reconnecting in %.1fs (attempt %d/%d)",
                        delay, self.reconnect_attempt, self.max_attempts)
            await self._sleep(delay)

        self._set_state(ConnectionState.DISCONNECTED)

    def _next_backoff(self) -> Optional[float]:
        if self.reconnect_attempt >= self.max_attempts:
            return None
        self.reconnect_attempt += 1
        return backoff_delay(self.reconnect_attempt, self.base_delay)

    def _give_up(self) -> None:
        self._running = False
        self.failed = True
        logger.error("Failed to maintain feed connection after %d attempts", self.max_attempts)
        if self.on_terminal_failure is not None:
            try:
                self.on_terminal_failure()
            except Exception as e:
                logger.warning("Terminal failure callback error: %s", e, exc_info=True)

    # ------------------------------------------------------------------
    # Keepalive
    # ------------------------------------------------------------------

    async def _keepalive(self, ws) -> None:
        while True:
            await asyncio.sleep(self.ping_interval)
            await self.send_ping(ws)

    async def send_ping(self, ws) -> bool:
        """Send a keepalive if the socket is open; skip silently otherwise."""
        if getattr(ws, "state", None) is not State.OPEN:
            return False
        try:
            await ws.send(PING_MESSAGE)
        except websockets.exceptions.ConnectionClosed:
            return False
        return True

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def handle_message(self, raw: Union[str, bytes]) -> int:
        """Decode one inbound frame; return the number of prices written."""
        self.message_count += 1
        self.last_message_time = time.time()

        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8", errors="replace")

        if raw == PONG_MESSAGE:
            logger.debug("Received pong")
            return 0

        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Malformed feed message (%s): %.200s", e, raw)
            return 0

        if not isinstance(message, dict):
            logger.warning("Unrecognized feed message: %.200s", raw)
            return 0

        event = message.get("event")
        if event == "subscribe":
            return 0
        if event == "error":
            logger.error("Feed error event code=%s msg=%s",
                         message.get("code"), message.get("msg"))
            return 0

        arg = message.get("arg")
        data = message.get("data")
        if isinstance(arg, dict) and isinstance(data, list) and arg.get("instId"):
            return self._apply_rows(arg["instId"], data)

        logger.warning("Unrecognized feed message: %.200s", raw)
        return 0

    def _apply_rows(self, inst_id: str, rows: list) -> int:
        written = 0
        for row in rows:
            try:
                price = row[ROW_CLOSE]
                ts = int(row[ROW_TS])
            except (IndexError, KeyError, TypeError, ValueError):
                logger.warning("Malformed candle row for %s: %r", inst_id, row)
                continue
            if price is None or price == "":
                logger.warning("Candle row for %s has no close price: %r", inst_id, row)
                continue
            if not isinstance(price, str):
                price = str(price)
            self.cache.set(inst_id, price, ts)
            written += 1
        return written
