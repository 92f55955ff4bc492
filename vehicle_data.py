"""
Vehicle data fetcher with endpoint fallback.

The backend exposes several redundant vehicle endpoints that have piled up
over time, and any of them may be down or return an unexpected shape. Reads
walk a fixed chain of tiers and always resolve to a non-empty list:

1. fresh cache entry (unless forced)
2. real endpoints, strictly in order, first non-empty extraction wins
3. mock fixture warmed before the endpoint loop
4. stale cache entry
5. built-in default vehicles
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import httpx

from backend_client import BackendClient
from cache_store import FARE_CACHE_KEY, VEHICLE_CACHE_KEY, SingleFlight, TTLCache
from errors import VehicleIdError
from events import VEHICLE_TABLES_SYNCED, DomainEvent, EventBus
from models import Vehicle
from vehicle_ids import VehicleIdValidator
from write_path import UpdateResult, WritePolicy, post_first_success

VEHICLE_DATA_ENDPOINTS = [
    "/api/fares/vehicles.php",
    "/api/fares/vehicles",
    "/api/vehicles",
    "/api/vehicles/list",
    "/api/cabs/vehicles.php",
    "/api/cabs/vehicles",
]

VEHICLE_UPDATE_ENDPOINTS = [
    "/api/admin/vehicle-pricing",
    "/api/admin/vehicle-pricing.php",
    "/api/fares/vehicles",
    "/api/fares/vehicles.php",
    "/api/admin/vehicles-update",
    "/api/admin/vehicles-update.php",
]

MOCK_VEHICLES_ENDPOINT = "/mock/fares/vehicles-data.json"

Extractor = Callable[[Any], Optional[List[Any]]]


def _raw_array(payload: Any) -> Optional[List[Any]]:
    return payload if isinstance(payload, list) else None


def _key_extractor(key: str) -> Extractor:
    def _extract(payload: Any) -> Optional[List[Any]]:
        if isinstance(payload, dict) and isinstance(payload.get(key), list):
            return payload[key]
        return None

    _extract.__name__ = f"extract_{key}"
    return _extract


# Known historical response shapes, tried in order.
EXTRACTORS: List[Extractor] = [
    _raw_array,
    _key_extractor("vehicles"),
    _key_extractor("data"),
    _key_extractor("results"),
]


def extract_records(payload: Any, extractors: Sequence[Extractor] = EXTRACTORS) -> Optional[List[Any]]:
    """Return the first non-empty list any extractor finds, else ``None``."""
    for extractor in extractors:
        records = extractor(payload)
        if records:
            return records
    return None


DEFAULT_VEHICLES: List[Dict[str, Any]] = [
    {
        "id": "sedan",
        "name": "Sedan",
        "description": "Comfortable 4-seater sedan",
        "image": "/images/cars/sedan.png",
        "basePrice": 800,
        "pricePerKm": 12,
        "capacity": 4,
        "luggageCapacity": 2,
        "ac": True,
        "hr8km80Price": 1200,
        "hr10km100Price": 1500,
        "driverAllowance": 300,
        "nightHaltCharge": 300,
        "airportFee": 0,
        "amenities": ["AC", "Bottle Water", "Music System"],
        "isActive": True,
    },
    {
        "id": "ertiga",
        "name": "Ertiga",
        "description": "Spacious 6-seater MUV",
        "image": "/images/cars/ertiga.png",
        "basePrice": 1200,
        "pricePerKm": 15,
        "capacity": 6,
        "luggageCapacity": 3,
        "ac": True,
        "hr8km80Price": 1800,
        "hr10km100Price": 2100,
        "driverAllowance": 350,
        "nightHaltCharge": 350,
        "airportFee": 0,
        "amenities": ["AC", "Bottle Water", "Music System", "Extra Legroom"],
        "isActive": True,
    },
    {
        "id": "innova_crysta",
        "name": "Innova Crysta",
        "description": "Premium 6-seater SUV",
        "image": "/images/cars/innova.png",
        "basePrice": 1500,
        "pricePerKm": 18,
        "capacity": 6,
        "luggageCapacity": 4,
        "ac": True,
        "hr8km80Price": 2100,
        "hr10km100Price": 2400,
        "driverAllowance": 400,
        "nightHaltCharge": 400,
        "airportFee": 0,
        "amenities": ["AC", "Bottle Water", "Music System", "Extra Legroom", "Charging Point"],
        "isActive": True,
    },
]


def default_vehicles() -> List[Dict[str, Any]]:
    return copy.deepcopy(DEFAULT_VEHICLES)


class VehicleDataFetcher:
    """Reads and bulk-writes vehicle data against the redundant endpoints.

    ``client`` may be ``None`` when no backend is configured; reads then go
    straight to the cache and default tiers and writes fail as network errors.
    """

    def __init__(
        self,
        client: Optional[BackendClient],
        cache: TTLCache,
        validator: VehicleIdValidator,
        event_bus: Optional[EventBus] = None,
        endpoints: Sequence[str] = VEHICLE_DATA_ENDPOINTS,
        update_endpoints: Sequence[str] = VEHICLE_UPDATE_ENDPOINTS,
        extractors: Sequence[Extractor] = EXTRACTORS,
        mock_endpoint: Optional[str] = MOCK_VEHICLES_ENDPOINT,
        mock_timeout_s: float = 3.0,
        request_timeout_s: float = 10.0,
        write_policy: Optional[WritePolicy] = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.validator = validator
        self.event_bus = event_bus
        self.endpoints = list(endpoints)
        self.update_endpoints = list(update_endpoints)
        self.extractors = list(extractors)
        self.mock_endpoint = mock_endpoint
        self.mock_timeout_s = mock_timeout_s
        self.request_timeout_s = request_timeout_s
        self.write_policy = write_policy or WritePolicy()
        self._singleflight = SingleFlight()

    async def fetch_vehicle_data(self, force_refresh: bool = False) -> List[Dict[str, Any]]:
        if not force_refresh:
            cached = self.cache.get(VEHICLE_CACHE_KEY)
            if isinstance(cached, list) and cached:
                print(f"[vehicle_data] using cached vehicle data ({len(cached)} vehicles)")
                return cached
        flight_key = f"{VEHICLE_CACHE_KEY}:{'force' if force_refresh else 'normal'}"
        return await self._singleflight.run(flight_key, lambda: self._fetch_chain(force_refresh))

    async def _fetch_chain(self, force_refresh: bool) -> List[Dict[str, Any]]:
        if force_refresh:
            print("[vehicle_data] forced refresh, purging vehicle cache")
            self.cache.invalidate(VEHICLE_CACHE_KEY)

        reserve = await self._load_mock()

        if self.client is not None:
            total = len(self.endpoints)
            for index, endpoint in enumerate(self.endpoints, start=1):
                print(f"[vehicle_data] attempt {index}/{total}: {endpoint}")
                try:
                    payload = await self.client.get_json(endpoint, timeout_s=self.request_timeout_s)
                except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as exc:
                    print(f"[vehicle_data] {endpoint} failed: {exc!r}")
                    continue
                records = extract_records(payload, self.extractors)
                if not records:
                    print(f"[vehicle_data] {endpoint} returned no usable vehicle list")
                    continue
                print(f"[vehicle_data] fetched {len(records)} vehicles from {endpoint}")
                self.cache.set(VEHICLE_CACHE_KEY, records)
                return records
            print("[vehicle_data] all vehicle endpoints failed")

        if reserve:
            print(f"[vehicle_data] falling back to mock data ({len(reserve)} vehicles)")
            self.cache.set(VEHICLE_CACHE_KEY, reserve)
            return reserve

        stale = self.cache.get_stale(VEHICLE_CACHE_KEY)
        if isinstance(stale, list) and stale:
            print("[vehicle_data] falling back to stale cached vehicle data")
            return stale

        print("[vehicle_data] no data available anywhere, using default vehicles")
        defaults = default_vehicles()
        self.cache.set(VEHICLE_CACHE_KEY, defaults)
        return defaults

    async def _load_mock(self) -> Optional[List[Any]]:
        if self.client is None or not self.mock_endpoint:
            return None
        try:
            payload = await self.client.get_json(self.mock_endpoint, timeout_s=self.mock_timeout_s)
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as exc:
            print(f"[vehicle_data] mock data unavailable: {exc!r}")
            return None
        return extract_records(payload, self.extractors)

    async def update_vehicle_data(
        self, vehicles: Sequence[Union[Vehicle, Mapping[str, Any]]]
    ) -> UpdateResult:
        """Bulk-write vehicle pricing.

        Every vehicle ID is validated before anything is sent; the first
        unmappable ID raises ``VehicleIdError``.
        """
        prepared: List[Vehicle] = []
        for item in vehicles:
            vehicle = item if isinstance(item, Vehicle) else Vehicle.from_record(item)
            if vehicle is None:
                raise VehicleIdError(item, "record has no vehicle ID")
            prepared.append(replace(vehicle, id=self.validator.require(vehicle.id)))

        payloads = [vehicle.to_payload() for vehicle in prepared]
        body = {
            "vehicles": payloads,
            "data": payloads,
            "vehicle_data": payloads,
            "results": payloads,
        }
        policy = WritePolicy(
            allow_simulated_success_on_total_failure=self.write_policy.allow_simulated_success_on_total_failure,
            extra_headers={**self.write_policy.extra_headers, "X-Update-Type": "vehicle-pricing"},
        )
        result = await post_first_success(
            self.client, self.update_endpoints, body, "vehicle data update", policy
        )
        if result.simulated:
            return result
        self.cache.invalidate(VEHICLE_CACHE_KEY)
        self.cache.invalidate(FARE_CACHE_KEY)
        if self.event_bus is not None:
            self.event_bus.publish(
                DomainEvent(VEHICLE_TABLES_SYNCED, details={"count": len(prepared)})
            )
        return result


__all__ = [
    "VehicleDataFetcher",
    "VEHICLE_DATA_ENDPOINTS",
    "VEHICLE_UPDATE_ENDPOINTS",
    "MOCK_VEHICLES_ENDPOINT",
    "EXTRACTORS",
    "extract_records",
    "default_vehicles",
    "DEFAULT_VEHICLES",
]
