"""
OKX public REST endpoints used by the ticker.

Endpoints:
  - Instrument metadata: GET /api/v5/public/instruments?instType=&instId=
        Response: {"code": "0", "data": [{"instId": "BTC-USDT-SWAP", "tickSz": "0.1", ...}]}
  - Ticker snapshot:     GET /api/v5/market/ticker?instId=
        Response: {"code": "0", "data": [{"instId": "BTC-USDT", "last": "43000.1", "ts": "1700000000000", ...}]}

Both are public and need no credentials. OKX reports API-level failures with
HTTP 200 and a non-"0" code, so both the status and the code are checked.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from okx_ticker.price_cache import PriceCache

logger = logging.getLogger(__name__)

OKX_BASE = "https://www.okx.com"
INSTRUMENTS_PATH = "/api/v5/public/instruments"
TICKER_PATH = "/api/v5/market/ticker"

# HTTP timeout per request (seconds)
HTTP_TIMEOUT = 10.0


class OKXRestError(Exception):
    """A REST call returned an error status or an OKX error code."""


class OKXTransportError(OKXRestError):
    """The REST endpoint could not be reached (connection error or timeout)."""


@dataclass
class Instrument:
    inst_id: str
    tick_size: str


@dataclass
class TickerSnapshot:
    inst_id: str
    last: str
    ts: int


class OKXRestClient:
    """
    Thin aiohttp wrapper for the two OKX endpoints.

    The session is created lazily and must be released with close().
    """

    def __init__(self, base_url: str = OKX_BASE, timeout: float = HTTP_TIMEOUT,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def _request(self, path: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        """GET path and return the payload's "data" list."""
        url = f"{self.base_url}{path}"
        session = self._get_session()
        try:
            async with session.get(url, params=params) as resp:
                if resp.status != 200:
                    raise OKXRestError(f"HTTP {resp.status}: {path} {params}")
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise OKXTransportError(f"{path}: {e!r}") from e
        except aiohttp.ClientError as e:
            raise OKXRestError(f"{path}: {e!r}") from e

        if not isinstance(payload, dict):
            raise OKXRestError(f"{path}: unexpected payload {payload!r}")
        code = str(payload.get("code", "0"))
        if code != "0":
            raise OKXRestError(f"{path}: OKX code {code} {payload.get('msg', '')}".rstrip())
        data = payload.get("data")
        if not isinstance(data, list) or not data:
            raise OKXRestError(f"{path}: empty data for {params}")
        return data

    async def fetch_instrument(self, inst_type: str, inst_id: str) -> Instrument:
        data = await self._request(INSTRUMENTS_PATH, {"instType": inst_type, "instId": inst_id})
        item = data[0]
        try:
            return Instrument(inst_id=item["instId"], tick_size=str(item["tickSz"]))
        except (KeyError, TypeError) as e:
            raise OKXRestError(f"instrument {inst_id}: missing field {e}") from e

    async def fetch_ticker(self, inst_id: str) -> TickerSnapshot:
        data = await self._request(TICKER_PATH, {"instId": inst_id})
        item = data[0]
        try:
            return TickerSnapshot(
                inst_id=item["instId"],
                last=str(item["last"]),
                ts=int(item["ts"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise OKXRestError(f"ticker {inst_id}: bad field {e}") from e

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None


async def seed_prices(client: OKXRestClient, symbols: Sequence[str], cache: PriceCache) -> int:
    """Fetch a ticker snapshot per symbol into the cache.

    Runs all lookups concurrently. Failed symbols are logged and skipped;
    returns how many symbols were seeded.
    """
    results = await asyncio.gather(
        *(client.fetch_ticker(inst_id) for inst_id in symbols),
        return_exceptions=True,
    )

    seeded = 0
    for inst_id, result in zip(symbols, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, Exception):
            logger.warning("Snapshot %s: %s", inst_id, result)
            continue
        cache.set(result.inst_id, result.last, result.ts)
        seeded += 1

    logger.info("Seeded %d/%d prices from REST snapshot", seeded, len(symbols))
    return seeded
