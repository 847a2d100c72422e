"""Tests for ExpiringStore."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from wabridge.cache import ExpiringStore


@pytest.fixture
def store(clock):
    return ExpiringStore(default_ttl=10, clock=clock)


class TestExpiry:
    def test_get_before_and_after_ttl(self, store, clock):
        store.put("a", 1)
        clock.advance(9.9)
        assert store.get("a") == 1
        clock.advance(0.1)
        assert store.get("a") is None

    def test_expired_entry_is_removed_on_access(self, store, clock):
        store.put("a", 1)
        clock.advance(11)
        assert store.get("a", "gone") == "gone"
        assert "a" not in store._data

    def test_per_entry_ttl(self, store, clock):
        store.put("short", 1, ttl=1)
        store.put("long", 2, ttl=100)
        clock.advance(50)
        assert "short" not in store
        assert store.get("long") == 2

    def test_put_replaces_value_and_expiry(self, store, clock):
        store.put("a", 1)
        clock.advance(8)
        store.put("a", 2)
        clock.advance(8)
        assert store.get("a") == 2

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError):
            ExpiringStore(default_ttl=0)


class TestMutation:
    def test_pop_removes(self, store):
        store.put("a", 1)
        assert store.pop("a") == 1
        assert store.pop("a") is None

    def test_pop_expired_returns_default(self, store, clock):
        store.put("a", 1)
        clock.advance(20)
        assert store.pop("a", "x") == "x"

    def test_delete_reports_live_removal(self, store, clock):
        store.put("a", 1)
        assert store.delete("a") is True
        assert store.delete("a") is False
        store.put("b", None)
        assert store.delete("b") is True

    def test_keys_in_insertion_order_reput_moves_to_end(self, store):
        store.put("a", 1)
        store.put("b", 2)
        store.put("c", 3)
        store.put("a", 4)
        assert store.keys() == ["b", "c", "a"]

    def test_len_counts_live_only(self, store, clock):
        store.put("a", 1, ttl=1)
        store.put("b", 2)
        clock.advance(2)
        assert len(store) == 1


class TestSweep:
    def test_sweep_purges_expired(self, store, clock):
        store.put("a", 1, ttl=1)
        store.put("b", 2, ttl=1)
        store.put("c", 3)
        clock.advance(5)
        assert store.sweep() == 2
        assert list(store._data) == ["c"]

    @pytest.mark.asyncio
    async def test_run_sweeper_until_cancelled(self, clock):
        store = ExpiringStore(default_ttl=1, clock=clock)
        store.put("a", 1)
        clock.advance(2)

        task = asyncio.create_task(store.run_sweeper(interval=0.01))
        await asyncio.sleep(0.05)
        assert store._data == {}

        task.cancel()
        await task
        assert task.done()


class TestThreadSafety:
    def test_parallel_put_get_pop(self, clock):
        store = ExpiringStore(default_ttl=100, clock=clock)

        def worker(i):
            store.put(i, i * 2)
            assert store.get(i) == i * 2
            if i % 2:
                assert store.pop(i) == i * 2

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(worker, range(1000)))

        assert len(store) == 500
        assert sorted(store.keys()) == list(range(0, 1000, 2))
