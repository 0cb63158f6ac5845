"""Tests for the process-local analytics cache."""

from services.analytics_cache import AnalyticsCache


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_entry_served_until_ttl_elapses():
    clock = FakeClock()
    cache = AnalyticsCache(ttl_s=60, clock=clock)
    key = cache.make_key("user-1", {"startDate": "2024-01-01"})

    cache.set(key, {"analytics": {"totalCalls": 3}})

    clock.now += 59
    assert cache.get(key) == {"analytics": {"totalCalls": 3}}

    clock.now += 1
    assert cache.get(key) is None


def test_key_ignores_body_key_order():
    a = AnalyticsCache.make_key("u", {"startDate": "2024-01-01", "endDate": "2024-01-07"})
    b = AnalyticsCache.make_key("u", {"endDate": "2024-01-07", "startDate": "2024-01-01"})
    assert a == b


def test_distinct_requests_do_not_share_entries():
    cache = AnalyticsCache(ttl_s=60, clock=FakeClock())
    k1 = cache.make_key("u", {"assistantIds": ["a1"]})
    k2 = cache.make_key("u", {"assistantIds": ["a2"]})
    k3 = cache.make_key("other-user", {"assistantIds": ["a1"]})

    cache.set(k1, {"n": 1})

    assert cache.get(k2) is None
    assert cache.get(k3) is None
    assert len(cache) == 1


def test_rewrite_refreshes_expiry():
    clock = FakeClock()
    cache = AnalyticsCache(ttl_s=10, clock=clock)
    cache.set("k", {"v": 1})
    clock.now += 8
    cache.set("k", {"v": 2})
    clock.now += 8
    assert cache.get("k") == {"v": 2}

    cache.clear()
    assert len(cache) == 0
