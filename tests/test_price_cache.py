"""Tests for the shared price cache."""

import dataclasses
import threading

import pytest

from okx_ticker.price_cache import PriceCache, PricePoint


class TestPriceCache:

    def test_get_unknown_symbol(self, cache):
        assert cache.get("BTC-USDT") is None
        assert "BTC-USDT" not in cache

    def test_last_write_wins(self, cache):
        cache.set("BTC-USDT", "43000.1", 1700000000000)
        cache.set("BTC-USDT", "43001.2", 1700000001000)

        assert cache.get("BTC-USDT") == PricePoint("BTC-USDT", "43001.2", 1700000001000)
        assert len(cache) == 1

    def test_older_timestamp_still_overwrites(self, cache):
        cache.set("BTC-USDT", "43001.2", 1700000001000)
        cache.set("BTC-USDT", "43000.1", 1700000000000)

        assert cache.get("BTC-USDT").price == "43000.1"

    def test_set_returns_new_point(self, cache):
        point = cache.set("ETH-USDT", "1850.5", "1700000000000")

        assert point.observed_at_ms == 1700000000000
        assert cache.get("ETH-USDT") is point

    def test_points_are_immutable(self, cache):
        point = cache.set("ETH-USDT", "1850.5", 1700000000000)

        with pytest.raises(dataclasses.FrozenInstanceError):
            point.price = "0"

    def test_clear(self, cache):
        cache.set("BTC-USDT", "1", 1)
        cache.set("ETH-USDT", "2", 2)

        cache.clear()

        assert len(cache) == 0
        assert cache.get("BTC-USDT") is None

    def test_snapshot_is_a_copy(self, cache):
        cache.set("BTC-USDT", "1", 1)
        snapshot = cache.snapshot()
        cache.set("ETH-USDT", "2", 2)

        assert list(snapshot) == ["BTC-USDT"]


class TestPriceCacheListeners:

    def test_listener_receives_point(self, cache):
        seen = []
        cache.add_listener(seen.append)

        point = cache.set("BTC-USDT", "43000.1", 1)

        assert seen == [point]

    def test_listener_can_read_cache(self, cache):
        seen = []
        cache.add_listener(lambda p: seen.append(cache.get(p.symbol)))

        cache.set("BTC-USDT", "43000.1", 1)

        assert seen[0].price == "43000.1"

    def test_listener_error_does_not_reach_writer(self, cache):
        def broken(point):
            raise RuntimeError("boom")

        seen = []
        cache.add_listener(broken)
        cache.add_listener(seen.append)

        cache.set("BTC-USDT", "43000.1", 1)

        assert cache.get("BTC-USDT").price == "43000.1"
        assert len(seen) == 1

    def test_remove_listener(self, cache):
        seen = []
        cache.add_listener(seen.append)
        cache.remove_listener(seen.append)
        cache.remove_listener(seen.append)

        cache.set("BTC-USDT", "1", 1)

        assert seen == []

    def test_listener_registered_once(self, cache):
        seen = []
        cache.add_listener(seen.append)
        cache.add_listener(seen.append)

        cache.set("BTC-USDT", "1", 1)

        assert len(seen) == 1


class TestPriceCacheConcurrency:

    def test_readers_never_see_torn_points(self, cache):
        """Writers store price == str(timestamp); readers must always agree."""
        errors = []
        done = threading.Event()

        def writer(offset):
            for i in range(2000):
                value = offset * 100000 + i
                cache.set("BTC-USDT", str(value), value)

        def reader():
            while not done.is_set():
                point = cache.get("BTC-USDT")
                if point is not None and point.price != str(point.observed_at_ms):
                    errors.append(point)

        readers = [threading.Thread(target=reader) for _ in range(2)]
        writers = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in readers + writers:
            t.start()
        for t in writers:
            t.join()
        done.set()
        for t in readers:
            t.join()

        assert errors == []
        assert len(cache) == 1
