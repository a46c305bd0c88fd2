from kudumbam.utils.ttl_cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(300, clock=clock)
    cache.set("features", ["a"])

    clock.now = 299
    assert cache.get("features") == ["a"]
    clock.now = 300
    assert cache.get("features") is None
    assert len(cache) == 0


def test_invalidate_one_or_all():
    cache = TTLCache(60, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    assert "a" not in cache and "b" in cache

    cache.invalidate()
    assert len(cache) == 0
