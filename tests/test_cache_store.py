import asyncio
import json
from pathlib import Path

from backend_fakes import make_cache

from cache_store import CacheEnvelope, JsonFileCacheStore, MemoryCacheStore, SingleFlight, TTLCache


def test_entry_is_fresh_up_to_ttl_inclusive():
    cache, clock = make_cache(ttl_s=120)
    cache.set("k", [1, 2])
    clock.advance(120)
    assert cache.get("k") == [1, 2]
    clock.advance(0.5)
    assert cache.get("k") is None


def test_stale_entry_is_kept_for_fallback():
    cache, clock = make_cache(ttl_s=60)
    cache.set("k", {"a": 1})
    clock.advance(3600)
    assert cache.get("k") is None
    assert cache.get_stale("k") == {"a": 1}


def test_corrupt_entry_is_a_miss():
    store = MemoryCacheStore({"bad": "{not json", "no_ts": json.dumps({"data": [1]})})
    cache, _clock = make_cache(store=store)
    assert cache.get("bad") is None
    assert cache.get_stale("bad") is None
    assert cache.get("no_ts") is None


def test_envelope_rejects_boolean_timestamp():
    try:
        CacheEnvelope.from_raw({"data": [], "timestamp": True})
    except ValueError:
        pass
    else:
        raise AssertionError("expected ValueError")


def test_invalidate_many_removes_keys():
    cache, _clock = make_cache()
    for key in ("a", "b", "c"):
        cache.set(key, key)
    cache.invalidate_many(["a", "b", "missing"])
    assert cache.get("a") is None
    assert cache.get("c") == "c"


def test_unserialisable_payload_is_not_written():
    cache, _clock = make_cache()
    cache.set("k", {"when": object()})
    assert cache.get_stale("k") is None


def test_file_store_persists_across_instances(tmp_path: Path):
    path = tmp_path / "nested" / "fare_cache.json"
    first = TTLCache(JsonFileCacheStore(path), 120, clock=lambda: 1000.0)
    first.set("cached_vehicle_data", [{"id": "sedan"}])

    second = TTLCache(JsonFileCacheStore(path), 120, clock=lambda: 1010.0)
    assert second.get("cached_vehicle_data") == [{"id": "sedan"}]
    assert not list(path.parent.glob("*.tmp"))


def test_file_store_ignores_corrupt_file(tmp_path: Path):
    path = tmp_path / "fare_cache.json"
    path.write_text("{{{")
    store = JsonFileCacheStore(path)
    assert store.keys() == []
    store.write("k", "v")
    assert json.loads(path.read_text()) == {"k": "v"}


def test_singleflight_shares_one_call():
    calls = []

    async def slow_fetch():
        calls.append(1)
        await asyncio.sleep(0.01)
        return "value"

    async def main():
        flight = SingleFlight()
        results = await asyncio.gather(*(flight.run("k", slow_fetch) for _ in range(5)))
        again = await flight.run("k", slow_fetch)
        return results, again

    results, again = asyncio.run(main())
    assert results == ["value"] * 5
    assert again == "value"
    assert len(calls) == 2
