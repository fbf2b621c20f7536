"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Dict, List, Optional

import pytest
from websockets.protocol import State

from okx_ticker.config import TickerConfig
from okx_ticker.price_cache import PriceCache
from okx_ticker.rest_client import (
    Instrument, OKXRestError, OKXTransportError, TickerSnapshot,
)


class FakeWebSocket:
    """Stands in for a websockets client connection."""

    def __init__(self, messages=(), block: bool = False):
        self.messages = list(messages)
        self.block = block
        self.sent: List[str] = []
        self.state = State.OPEN
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
        return False

    async def close(self):
        self.state = State.CLOSED
        self.closed = True

    async def send(self, message):
        self.sent.append(message)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.block:
            await asyncio.Event().wait()


class FakeConnector:
    """websockets.connect replacement returning scripted outcomes.

    Each call pops the next outcome: a FakeWebSocket is returned, an
    exception is raised. Once the script is empty every call fails.
    """

    def __init__(self, outcomes=()):
        self.outcomes = list(outcomes)
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0) if self.outcomes else OSError("unreachable")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class SleepRecorder:
    """asyncio.sleep replacement that records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeRestClient:
    """In-memory OKXRestClient with per-symbol tick sizes and tickers."""

    def __init__(self, tick_sizes: Optional[Dict[str, object]] = None,
                 tickers: Optional[Dict[str, object]] = None,
                 ticker_delay: float = 0.0):
        self.tick_sizes = tick_sizes or {}
        self.tickers = tickers or {}
        self.ticker_delay = ticker_delay
        self.instrument_calls = []
        self.ticker_calls = []
        self.closed = False

    async def fetch_instrument(self, inst_type, inst_id):
        self.instrument_calls.append((inst_type, inst_id))
        value = self.tick_sizes.get(inst_id, OKXRestError(f"no instrument {inst_id}"))
        if isinstance(value, Exception):
            raise value
        return Instrument(inst_id=inst_id, tick_size=value)

    async def fetch_ticker(self, inst_id):
        self.ticker_calls.append(inst_id)
        if self.ticker_delay:
            await asyncio.sleep(self.ticker_delay)
        value = self.tickers.get(inst_id, OKXRestError(f"no ticker {inst_id}"))
        if isinstance(value, Exception):
            raise value
        last, ts = value
        return TickerSnapshot(inst_id=inst_id, last=last, ts=ts)

    async def close(self):
        self.closed = True


@pytest.fixture
def cache() -> PriceCache:
    return PriceCache()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fake_ws_factory():
    return FakeWebSocket


@pytest.fixture
def connector_factory():
    return FakeConnector


@pytest.fixture
def unreachable():
    return OKXTransportError("connection refused")


@pytest.fixture
def rest_client() -> FakeRestClient:
    """REST fake for a BTC perp and spot pair that both resolve."""
    return FakeRestClient(
        tick_sizes={"BTC-USDT-SWAP": "0.1", "BTC-USDT": "0.01"},
        tickers={
            "BTC-USDT-SWAP": ("43000.15", 1700000000000),
            "BTC-USDT": ("42999.987", 1700000000500),
        },
    )


@pytest.fixture
def rest_client_factory():
    return FakeRestClient


@pytest.fixture
def sample_config() -> TickerConfig:
    return TickerConfig(pairs=["BTC-USDT-SWAP", "BTC-USDT"], abbreviation="enable")


@pytest.fixture
def candle_message() -> str:
    """One candle1s push for ETH-USDT-SWAP."""
    return (
        '{"arg": {"channel": "candle1s", "instId": "ETH-USDT-SWAP"},'
        ' "data": [["1700000000000", "1850.1", "1851.0", "1849.9", "1850.5",'
        ' "12.3", "0.123", "22754.15", "0"]]}'
    )
