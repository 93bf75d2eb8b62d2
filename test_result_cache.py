from threatlens.core.result_cache import ResultCache


def test_fresh_entry_returned(clock):
    cache = ResultCache(expiry=300, sweep_threshold=10, clock=clock)
    result = {'threat_score': 42}
    cache.set("https://example.com", result)
    assert cache.get("https://example.com") is result


def test_expired_entry_not_returned(clock):
    cache = ResultCache(expiry=300, sweep_threshold=10, clock=clock)
    cache.set("k", {'v': 1})

    clock.advance(299)
    assert cache.get("k") is not None
    clock.advance(1)
    assert cache.get("k") is None


def test_sweep_runs_past_threshold(clock):
    cache = ResultCache(expiry=60, sweep_threshold=3, clock=clock)
    for key in ("a", "b", "c"):
        cache.set(key, key)

    clock.advance(61)
    cache.set("d", "d")

    assert len(cache) == 1
    assert cache.get("d") == "d"


def test_no_sweep_below_threshold(clock):
    cache = ResultCache(expiry=60, sweep_threshold=10, clock=clock)
    cache.set("a", 1)
    clock.advance(61)
    cache.set("b", 2)
    assert len(cache) == 2
    assert cache.sweep() == 1
    assert len(cache) == 1


def test_clear():
    cache = ResultCache(expiry=60, sweep_threshold=10)
    cache.set("a", 1)
    cache.clear()
    assert len(cache) == 0
    assert cache.get("a") is None
