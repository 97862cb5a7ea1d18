"""
Test the TTL response cache.
"""

from cache import TTLCache


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, *, minutes: float = 0, seconds: float = 0) -> None:
        self.now += minutes * 60 + seconds


def test_set_then_get_returns_the_same_object() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    budgets = {"budgets": [{"id": "b1", "name": "Main"}]}

    cache.set("budgets:list", budgets, 5)

    assert cache.get("budgets:list") is budgets


def test_entry_expires_after_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("budgets:list", {"budgets": []}, 5)

    clock.advance(minutes=6)

    assert cache.get("budgets:list") is None
    # Eviction is idempotent
    assert cache.get("budgets:list") is None
    assert len(cache) == 0


def test_entry_is_served_until_expiry() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("k", "v", 5)

    clock.advance(minutes=5)
    assert cache.get("k") == "v"

    clock.advance(seconds=1)
    assert cache.get("k") is None


def test_default_ttl_is_five_minutes() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("k", "v")

    clock.advance(minutes=4, seconds=59)
    assert cache.get("k") == "v"

    clock.advance(seconds=2)
    assert cache.get("k") is None


def test_set_overwrites_value_and_expiry() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("k", "old", 1)

    clock.advance(seconds=30)
    cache.set("k", "new", 10)
    clock.advance(minutes=5)

    assert cache.get("k") == "new"
    assert len(cache) == 1


def test_unknown_key() -> None:
    assert TTLCache().get("missing") is None


def test_invalidate_by_prefix() -> None:
    cache = TTLCache(clock=FakeClock())
    cache.set("list_accounts:b1:", ["checking"])
    cache.set("budget_summary:b1:2024-01-01", {})
    cache.set("list_accounts:b2:", ["savings"])

    assert cache.invalidate("list_accounts:b1:") == 1
    assert cache.invalidate("nothing:") == 0

    assert cache.get("list_accounts:b1:") is None
    assert cache.get("list_accounts:b2:") == ["savings"]
    assert cache.get("budget_summary:b1:2024-01-01") == {}


def test_clear() -> None:
    cache = TTLCache(clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)

    cache.clear()

    assert len(cache) == 0
    assert cache.get("a") is None
