"""
Tests for the vehicle data fetcher fallback chain and bulk write.

Validates:
1. Endpoints are tried strictly in order and the first usable list wins
2. The mock fixture, stale cache and defaults cover total outages
3. Unmappable IDs never reach the network
"""
import asyncio
import json

import pytest

from backend_fakes import FakeBackend, connect_error, html_page, make_cache

from cache_store import FARE_CACHE_KEY, VEHICLE_CACHE_KEY
from errors import FareUpdateError, VehicleIdError
from events import VEHICLE_TABLES_SYNCED, EventBus
from models import Vehicle
from vehicle_data import (
    MOCK_VEHICLES_ENDPOINT,
    VEHICLE_DATA_ENDPOINTS,
    VEHICLE_UPDATE_ENDPOINTS,
    VehicleDataFetcher,
    default_vehicles,
    extract_records,
)
from vehicle_ids import VehicleIdValidator
from write_path import WritePolicy

SEDAN = {"id": "sedan", "name": "Sedan", "basePrice": 4200, "pricePerKm": 14}
ERTIGA = {"id": "ertiga", "name": "Ertiga", "basePrice": 5400, "pricePerKm": 18}


def _fetcher(backend, cache=None, **kwargs):
    if cache is None:
        cache, _clock = make_cache()
    return VehicleDataFetcher(
        backend.client() if backend is not None else None,
        cache,
        VehicleIdValidator(),
        **kwargs,
    )


def _all_endpoints_down():
    return {("GET", path): connect_error for path in VEHICLE_DATA_ENDPOINTS}


def test_extractors_cover_known_shapes():
    assert extract_records([SEDAN]) == [SEDAN]
    assert extract_records({"vehicles": [SEDAN]}) == [SEDAN]
    assert extract_records({"data": [SEDAN]}) == [SEDAN]
    assert extract_records({"status": "ok", "results": [SEDAN]}) == [SEDAN]


def test_extractors_reject_empty_or_unknown_shapes():
    assert extract_records([]) is None
    assert extract_records({"vehicles": []}) is None
    assert extract_records({"vehicles": {"sedan": SEDAN}}) is None
    assert extract_records("sedan") is None
    assert extract_records({"vehicles": [], "data": [ERTIGA]}) == [ERTIGA]


def test_first_endpoint_wins_and_is_cached():
    backend = FakeBackend({("GET", VEHICLE_DATA_ENDPOINTS[0]): (200, {"vehicles": [SEDAN, ERTIGA]})})
    cache, _clock = make_cache()
    fetcher = _fetcher(backend, cache)

    result = asyncio.run(fetcher.fetch_vehicle_data())

    assert result == [SEDAN, ERTIGA]
    assert cache.get(VEHICLE_CACHE_KEY) == [SEDAN, ERTIGA]
    assert backend.paths() == [MOCK_VEHICLES_ENDPOINT, VEHICLE_DATA_ENDPOINTS[0]]

    again = asyncio.run(fetcher.fetch_vehicle_data())
    assert again == result
    assert len(backend.calls) == 2


def test_endpoints_are_tried_in_order_until_usable():
    routes = {
        ("GET", VEHICLE_DATA_ENDPOINTS[0]): (500, {"error": "boom"}),
        ("GET", VEHICLE_DATA_ENDPOINTS[1]): connect_error,
        ("GET", VEHICLE_DATA_ENDPOINTS[2]): html_page,
        ("GET", VEHICLE_DATA_ENDPOINTS[3]): (200, {"vehicles": []}),
        ("GET", VEHICLE_DATA_ENDPOINTS[4]): (200, {"data": [ERTIGA]}),
        ("GET", VEHICLE_DATA_ENDPOINTS[5]): (200, [SEDAN]),
    }
    backend = FakeBackend(routes)
    result = asyncio.run(_fetcher(backend).fetch_vehicle_data())

    assert result == [ERTIGA]
    assert backend.paths()[1:] == VEHICLE_DATA_ENDPOINTS[:5]


def test_every_request_carries_cache_busting():
    backend = FakeBackend({("GET", VEHICLE_DATA_ENDPOINTS[0]): (200, [SEDAN])})
    asyncio.run(_fetcher(backend).fetch_vehicle_data())
    for request in backend.calls:
        assert "_t" in request.url.params
        assert request.headers["Cache-Control"].startswith("no-cache")


def test_mock_fixture_used_when_all_endpoints_fail():
    mock_vehicles = [SEDAN, ERTIGA, {"id": "innova_crysta", "name": "Innova Crysta"}]
    routes = _all_endpoints_down()
    routes[("GET", MOCK_VEHICLES_ENDPOINT)] = (200, {"vehicles": mock_vehicles})
    backend = FakeBackend(routes)
    cache, _clock = make_cache()

    result = asyncio.run(_fetcher(backend, cache).fetch_vehicle_data())

    assert result == mock_vehicles
    assert cache.get(VEHICLE_CACHE_KEY) == mock_vehicles
    assert backend.paths().count(MOCK_VEHICLES_ENDPOINT) == 1


def test_stale_cache_used_when_everything_fails():
    backend = FakeBackend(_all_endpoints_down())
    cache, clock = make_cache(ttl_s=120)
    cache.set(VEHICLE_CACHE_KEY, [SEDAN])
    clock.advance(3600)

    result = asyncio.run(_fetcher(backend, cache).fetch_vehicle_data())

    assert result == [SEDAN]


def test_defaults_on_total_outage():
    backend = FakeBackend(_all_endpoints_down())
    cache, _clock = make_cache()

    result = asyncio.run(_fetcher(backend, cache).fetch_vehicle_data())

    assert [v["id"] for v in result] == ["sedan", "ertiga", "innova_crysta"]
    assert cache.get(VEHICLE_CACHE_KEY) == result


def test_no_client_serves_defaults():
    result = asyncio.run(_fetcher(None).fetch_vehicle_data())
    assert result == default_vehicles()


def test_defaults_are_copies():
    first = default_vehicles()
    first[0]["basePrice"] = 1
    assert default_vehicles()[0]["basePrice"] == 800


def test_force_refresh_skips_fresh_cache():
    backend = FakeBackend({("GET", VEHICLE_DATA_ENDPOINTS[0]): (200, [ERTIGA])})
    cache, _clock = make_cache()
    cache.set(VEHICLE_CACHE_KEY, [SEDAN])
    fetcher = _fetcher(backend, cache)

    assert asyncio.run(fetcher.fetch_vehicle_data()) == [SEDAN]
    assert backend.calls == []
    assert asyncio.run(fetcher.fetch_vehicle_data(force_refresh=True)) == [ERTIGA]


def test_concurrent_reads_share_one_fetch():
    backend = FakeBackend({("GET", VEHICLE_DATA_ENDPOINTS[0]): (200, [SEDAN])})
    fetcher = _fetcher(backend)

    async def main():
        return await asyncio.gather(*(fetcher.fetch_vehicle_data() for _ in range(4)))

    results = asyncio.run(main())
    assert all(r == [SEDAN] for r in results)
    assert backend.paths().count(VEHICLE_DATA_ENDPOINTS[0]) == 1


def test_bulk_update_rejects_invalid_id_before_network():
    backend = FakeBackend()
    fetcher = _fetcher(backend)
    vehicles = [Vehicle(id="sedan", name="Sedan"), Vehicle(id="Swift Dzire", name="Swift")]

    with pytest.raises(VehicleIdError):
        asyncio.run(fetcher.update_vehicle_data(vehicles))
    assert backend.calls == []


def test_bulk_update_sends_canonical_dual_cased_payload():
    backend = FakeBackend({("POST", VEHICLE_UPDATE_ENDPOINTS[0]): (200, {"status": "success"})})
    cache, _clock = make_cache()
    cache.set(VEHICLE_CACHE_KEY, [SEDAN, ERTIGA])
    cache.set(FARE_CACHE_KEY, {"stale": True})
    bus = EventBus()
    seen = []
    bus.subscribe(VEHICLE_TABLES_SYNCED, seen.append)
    fetcher = _fetcher(backend, cache, event_bus=bus)

    result = asyncio.run(fetcher.update_vehicle_data([{"id": "1271", "name": "Etios", "basePrice": 3200}]))

    assert result.success and not result.simulated
    request = backend.calls[0]
    assert request.headers["X-Update-Type"] == "vehicle-pricing"
    assert request.headers["X-Force-Refresh"] == "true"
    body = json.loads(request.content)
    for key in ("vehicles", "data", "vehicle_data", "results"):
        assert body[key][0]["id"] == "etios"
    sent = body["vehicles"][0]
    assert sent["basePrice"] == sent["base_price"] == 3200
    assert sent["vehicleId"] == sent["vehicle_id"] == sent["cab_id"] == "etios"
    assert cache.get(VEHICLE_CACHE_KEY) is None
    assert cache.get_stale(VEHICLE_CACHE_KEY) is None
    assert cache.get(FARE_CACHE_KEY) is None
    assert seen and seen[0].details == {"count": 1}


def test_bulk_update_total_failure_raises():
    backend = FakeBackend({("POST", path): connect_error for path in VEHICLE_UPDATE_ENDPOINTS})
    fetcher = _fetcher(backend)

    with pytest.raises(FareUpdateError) as excinfo:
        asyncio.run(fetcher.update_vehicle_data([Vehicle(id="sedan", name="Sedan")]))
    assert excinfo.value.kind == FareUpdateError.NETWORK
    assert backend.paths("POST") == VEHICLE_UPDATE_ENDPOINTS


def test_bulk_update_simulated_success_leaves_cache_alone():
    backend = FakeBackend()
    cache, _clock = make_cache()
    cache.set(VEHICLE_CACHE_KEY, [SEDAN])
    policy = WritePolicy(allow_simulated_success_on_total_failure=True)
    fetcher = _fetcher(backend, cache, write_policy=policy)

    result = asyncio.run(fetcher.update_vehicle_data([Vehicle(id="ertiga", name="Ertiga")]))

    assert result.simulated
    assert cache.get(VEHICLE_CACHE_KEY) == [SEDAN]


def test_read_after_bulk_update_returns_whole_fleet():
    backend = FakeBackend({
        ("GET", VEHICLE_DATA_ENDPOINTS[0]): (200, {"vehicles": [SEDAN, ERTIGA]}),
        ("POST", VEHICLE_UPDATE_ENDPOINTS[0]): (200, {"status": "success"}),
    })
    fetcher = _fetcher(backend)

    async def main():
        await fetcher.fetch_vehicle_data()
        await fetcher.update_vehicle_data([{"id": "sedan", "basePrice": 4300}])
        return await fetcher.fetch_vehicle_data()

    after = asyncio.run(main())

    assert [v["id"] for v in after] == ["sedan", "ertiga"]
    assert backend.paths("GET").count(VEHICLE_DATA_ENDPOINTS[0]) == 2
