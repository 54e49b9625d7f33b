from expiring_store import ExpiringStore, RateLimiter, thumbnail_cache_key


def test_value_expires_after_ttl():
    store = ExpiringStore(ttl_seconds=300)
    store.set("k", "v", now=1000)

    assert store.get("k", now=1300) == "v"
    assert store.get("k", now=1301) is None
    assert len(store) == 0


def test_purge_expired_only_drops_stale_entries():
    store = ExpiringStore(ttl_seconds=10)
    store.set("old", 1, now=0)
    store.set("new", 2, now=8)

    assert store.purge_expired(now=15) == 1
    assert store.get("new", now=15) == 2


def test_rate_limiter_blocks_after_max_requests_in_window():
    limiter = RateLimiter(max_requests=3, window_seconds=60)

    assert [limiter.check("guest", now=t) for t in (0, 1, 2, 3)] == [True, True, True, False]
    # other identifiers have their own window
    assert limiter.check("other", now=3) is True


def test_rate_limiter_window_resets():
    limiter = RateLimiter(max_requests=1, window_seconds=60)
    assert limiter.check("guest", now=0) is True
    assert limiter.check("guest", now=30) is False
    assert limiter.check("guest", now=61) is True



def test_rate_limiter_drops_stale_identifiers():
    limiter = RateLimiter(max_requests=5, window_seconds=60)
    for guest in ("a", "b", "c"):
        limiter.check(guest, now=0)

    assert len(limiter) == 3
    assert limiter.check("d", now=100) is True
    assert len(limiter) == 1


def test_thumbnail_cache_key():
    assert thumbnail_cache_key("abc", "mobile") == "thumbnail_abc_mobile"
