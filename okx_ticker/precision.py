"""
Display precision per instrument, derived from the exchange tick size.

    tickSz "0.1"  -> 1 decimal
    tickSz "0.01" -> 2 decimals
    tickSz "1"    -> 0 decimals
"""

import asyncio
import logging
import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, Optional, Sequence

from okx_ticker.rest_client import OKXRestClient, OKXTransportError

logger = logging.getLogger(__name__)

INST_TYPE_SWAP = "SWAP"
INST_TYPE_SPOT = "SPOT"


class PrecisionLookupError(Exception):
    """Every instrument lookup failed because the REST endpoint was unreachable."""


def instrument_type(inst_id: str) -> str:
    return INST_TYPE_SWAP if inst_id.endswith("-SWAP") else INST_TYPE_SPOT


def precision_from_tick_size(tick_size: str) -> int:
    """Fractional digits implied by a tick size, rounded, never negative."""
    tick = float(tick_size)
    if not math.isfinite(tick) or tick <= 0:
        raise ValueError(f"tick size must be positive, got {tick_size!r}")
    return max(0, int(round(-math.log10(tick))))


def format_price(price: str, precision: Optional[int]) -> str:
    """Render price at precision decimals, half-up.

    Returns the raw string when precision is unknown or price is not a number.
    """
    if precision is None:
        return price
    try:
        value = Decimal(price)
    except (InvalidOperation, TypeError, ValueError):
        return price
    if not value.is_finite():
        return price
    quantum = Decimal(1).scaleb(-precision)
    try:
        return format(value.quantize(quantum, rounding=ROUND_HALF_UP), "f")
    except InvalidOperation:
        return price


class PrecisionResolver:
    """Looks up tick sizes for a batch of instruments once per session."""

    def __init__(self, client: OKXRestClient):
        self.client = client

    async def _resolve_one(self, inst_id: str) -> int:
        instrument = await self.client.fetch_instrument(instrument_type(inst_id), inst_id)
        return precision_from_tick_size(instrument.tick_size)

    async def resolve(self, symbols: Sequence[str]) -> Dict[str, int]:
        """Return inst_id -> precision for every symbol that could be resolved.

        Raises PrecisionLookupError only when every lookup failed with a
        transport error; any other failure just leaves that symbol out.
        """
        if not symbols:
            return {}

        results = await asyncio.gather(
            *(self._resolve_one(inst_id) for inst_id in symbols),
            return_exceptions=True,
        )

        precisions: Dict[str, int] = {}
        transport_failures = 0
        for inst_id, result in zip(symbols, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, OKXTransportError):
                transport_failures += 1
                logger.warning("Precision %s: unreachable: %s", inst_id, result)
            elif isinstance(result, Exception):
                logger.warning("Precision %s: %s", inst_id, result)
            else:
                precisions[inst_id] = result

        if transport_failures == len(symbols):
            raise PrecisionLookupError(
                f"instrument endpoint unreachable for all {len(symbols)} symbols"
            )

        logger.info("Resolved precision for %d/%d symbols", len(precisions), len(symbols))
        return precisions
