from app.utils.ttl_store import TTLStore


def test_entries_expire_on_the_injected_clock(clock):
    store = TTLStore(default_ttl=10, clock=clock)
    store.set("k", "v")

    clock.advance(9.9)
    assert store.get("k") == "v"

    clock.advance(0.1)
    assert store.get("k") is None
    assert len(store) == 0


def test_add_only_stores_when_absent(clock):
    store = TTLStore(default_ttl=10, clock=clock)

    assert store.add("k", 1) is True
    assert store.add("k", 2) is False
    assert store.get("k") == 1

    clock.advance(10)
    assert store.add("k", 3) is True
    assert store.get("k") == 3


def test_expire_in_only_shortens(clock):
    store = TTLStore(default_ttl=300, clock=clock)
    store.set("k", "v")

    assert store.expire_in("k", 1) is True
    clock.advance(0.5)
    assert store.get("k") == "v"
    clock.advance(0.5)
    assert store.get("k") is None

    store.set("short", "v", ttl=2)
    store.expire_in("short", 100)
    clock.advance(2)
    assert store.get("short") is None


def test_delete_with_value_checks_identity(clock):
    store = TTLStore(default_ttl=10, clock=clock)
    current = object()
    store.set("k", current)

    store.delete("k", object())
    assert store.get("k") is current

    store.delete("k", current)
    assert store.get("k") is None


def test_purge_expired(clock):
    store = TTLStore(default_ttl=5, clock=clock)
    store.set("a", 1)
    store.set("b", 2, ttl=50)

    clock.advance(6)
    assert store.purge_expired() == 1
    assert len(store) == 1
