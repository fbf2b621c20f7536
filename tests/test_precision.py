"""Tests for tick-size precision and price formatting."""

import asyncio

import pytest

from okx_ticker.precision import (
    PrecisionLookupError, PrecisionResolver, format_price, instrument_type,
    precision_from_tick_size,
)
from okx_ticker.rest_client import OKXRestError


class TestPrecisionFromTickSize:

    @pytest.mark.parametrize("tick_size, expected", [
        ("0.01", 2),
        ("0.1", 1),
        ("1", 0),
        ("0.00001", 5),
        ("0.25", 1),
        ("10", 0),
    ])
    def test_precision(self, tick_size, expected):
        assert precision_from_tick_size(tick_size) == expected

    @pytest.mark.parametrize("tick_size", ["0", "-0.1", "abc", "nan"])
    def test_invalid_tick_size(self, tick_size):
        with pytest.raises(ValueError):
            precision_from_tick_size(tick_size)


class TestFormatPrice:

    def test_half_up_rounding(self):
        assert format_price("100.005", 2) == "100.01"

    def test_rounding_is_consistent(self):
        assert {format_price("100.005", 2) for _ in range(5)} == {"100.01"}

    def test_pads_to_precision(self):
        assert format_price("1850.5", 2) == "1850.50"

    def test_zero_precision(self):
        assert format_price("43000.6", 0) == "43001"

    def test_unknown_precision_returns_raw(self):
        assert format_price("100.005", None) == "100.005"

    def test_non_numeric_returns_raw(self):
        assert format_price("n/a", 2) == "n/a"

    def test_small_values_not_scientific(self):
        assert format_price("0.00000012", 8) == "0.00000012"


class TestInstrumentType:

    def test_swap_suffix(self):
        assert instrument_type("BTC-USDT-SWAP") == "SWAP"

    def test_everything_else_is_spot(self):
        assert instrument_type("BTC-USDT") == "SPOT"


class TestPrecisionResolver:

    def test_resolves_each_symbol(self, rest_client):
        resolver = PrecisionResolver(rest_client)

        result = asyncio.run(resolver.resolve(["BTC-USDT-SWAP", "BTC-USDT"]))

        assert result == {"BTC-USDT-SWAP": 1, "BTC-USDT": 2}
        assert sorted(rest_client.instrument_calls) == [
            ("SPOT", "BTC-USDT"), ("SWAP", "BTC-USDT-SWAP"),
        ]

    def test_one_failure_leaves_symbol_out(self, rest_client_factory):
        client = rest_client_factory(tick_sizes={
            "BTC-USDT": "0.1",
            "ETH-USDT": OKXRestError("HTTP 500"),
            "SOL-USDT": "bogus",
        })

        result = asyncio.run(PrecisionResolver(client).resolve(["BTC-USDT", "ETH-USDT", "SOL-USDT"]))

        assert result == {"BTC-USDT": 1}

    def test_all_unreachable_raises(self, rest_client_factory, unreachable):
        client = rest_client_factory(tick_sizes={"BTC-USDT": unreachable, "ETH-USDT": unreachable})

        with pytest.raises(PrecisionLookupError):
            asyncio.run(PrecisionResolver(client).resolve(["BTC-USDT", "ETH-USDT"]))

    def test_partial_unreachable_does_not_raise(self, rest_client_factory, unreachable):
        client = rest_client_factory(tick_sizes={"BTC-USDT": "0.01", "ETH-USDT": unreachable})

        result = asyncio.run(PrecisionResolver(client).resolve(["BTC-USDT", "ETH-USDT"]))

        assert result == {"BTC-USDT": 2}

    def test_api_errors_everywhere_do_not_raise(self, rest_client_factory):
        client = rest_client_factory()

        assert asyncio.run(PrecisionResolver(client).resolve(["BTC-USDT"])) == {}

    def test_empty_batch(self, rest_client):
        assert asyncio.run(PrecisionResolver(rest_client).resolve([])) == {}
        assert rest_client.instrument_calls == []
