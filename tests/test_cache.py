from walletchat.cache import TTLCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_fresh_entry_is_returned_until_ttl_expires():
    clock = FakeClock()
    cache = TTLCache(default_ttl=20.0, clock=clock)
    cache.set("balance:abc", 5)

    clock.now += 19.9
    assert cache.get("balance:abc") == 5

    clock.now += 0.2
    assert cache.get("balance:abc") is None


def test_stale_entry_is_still_available_as_fallback():
    clock = FakeClock()
    cache = TTLCache(default_ttl=5.0, clock=clock)
    cache.set("price:SOL", 150)

    clock.now += 3600
    assert cache.get("price:SOL") is None
    assert cache.get_stale("price:SOL") == 150
    assert cache.age("price:SOL") == 3600


def test_per_call_ttl_override():
    clock = FakeClock()
    cache = TTLCache(default_ttl=60.0, clock=clock)
    cache.set("k", "v")
    clock.now += 10
    assert cache.get("k", ttl=5) is None
    assert cache.get("k") == "v"


def test_least_recently_used_entry_is_evicted():
    cache = TTLCache(max_size=2, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert cache.get_stale("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert cache.size() == 2


def test_delete_and_clear():
    cache = TTLCache(clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    assert cache.get_stale("a") is None
    cache.clear()
    assert cache.size() == 0
