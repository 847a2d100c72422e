"""Tests for CorrelationCache."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from wabridge.cache import CorrelationCache, ExpiringStore, RoutingEntry


class TestRecordInbound:
    def test_ids_are_sequential(self, correlation):
        assert correlation.record_inbound("a@s.whatsapp.net", "A", False) == "msg_1"
        assert correlation.record_inbound("b@s.whatsapp.net", "B", False) == "msg_2"
        assert correlation.total_recorded == 2

    def test_ids_are_unique_even_for_same_sender(self, correlation):
        ids = {correlation.record_inbound("a@s.whatsapp.net", "A", False) for _ in range(50)}
        assert len(ids) == 50

    def test_entry_fields(self, correlation, clock):
        cid = correlation.record_inbound("123@g.us", "Family", True)
        entry = correlation.resolve(cid)
        assert entry == RoutingEntry("123@g.us", "Family", True, clock.now)


class TestResolve:
    def test_unknown_and_empty(self, correlation):
        assert correlation.resolve("msg_99") is None
        assert correlation.resolve("") is None

    def test_strips_whitespace(self, correlation):
        cid = correlation.record_inbound("a@s.whatsapp.net", "A", False)
        assert correlation.resolve(f"  {cid} ").address == "a@s.whatsapp.net"

    def test_expires_after_ttl(self, clock):
        cache = CorrelationCache(ttl=60, store=ExpiringStore(60, clock=clock), clock=clock)
        cid = cache.record_inbound("a@s.whatsapp.net", "A", False)
        clock.advance(59)
        assert cache.resolve(cid) is not None
        clock.advance(1)
        assert cache.resolve(cid) is None
        assert len(cache) == 0
        # Counter keeps going after expiry
        assert cache.record_inbound("a@s.whatsapp.net", "A", False) == "msg_2"


class TestRecent:
    def test_newest_first_limited(self, correlation):
        for i in range(12):
            correlation.record_inbound(f"{i}@s.whatsapp.net", f"N{i}", False)
        recent = correlation.recent(10)
        assert len(recent) == 10
        assert recent[0][0] == "msg_12"
        assert recent[-1][0] == "msg_3"

    def test_skips_expired(self, clock):
        store = ExpiringStore(100, clock=clock)
        cache = CorrelationCache(ttl=100, store=store, clock=clock)
        cache.record_inbound("old@s.whatsapp.net", "Old", False)
        clock.advance(60)
        cache.record_inbound("new@s.whatsapp.net", "New", False)
        clock.advance(50)
        assert [cid for cid, _ in cache.recent(10)] == ["msg_2"]

    @pytest.mark.parametrize("n", [0, -1])
    def test_non_positive_n(self, correlation, n):
        correlation.record_inbound("a@s.whatsapp.net", "A", False)
        assert correlation.recent(n) == []


class TestConcurrency:
    def test_parallel_record_and_resolve(self, correlation):
        def record_and_resolve(i):
            address = f"62800{i}@s.whatsapp.net"
            cid = correlation.record_inbound(address, f"User {i}", False)
            entry = correlation.resolve(cid)
            return cid, address, entry

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(record_and_resolve, range(500)))

        ids = [cid for cid, _, _ in results]
        assert len(set(ids)) == 500
        assert correlation.total_recorded == 500
        assert len(correlation) == 500
        for cid, address, entry in results:
            assert entry is not None
            assert entry.address == address
            assert correlation.resolve(cid).address == address
