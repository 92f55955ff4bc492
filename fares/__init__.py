"""
Fares Module

Per-trip-type fare records and the services that read and write them. Each
trip category (outstation, local, airport) subclasses FareCategoryService and
declares its endpoints, cache key, record type and fare calculation.

Example usage:
    from fares.local import LocalFareService

    service = LocalFareService(client, cache, validator, event_bus)
    fares = await service.get_all_fares()
    record = await service.get_fares_for_vehicle("Innova Crysta")
    await service.update_fares("innova_crysta", {"price8hrs80km": 2600})

Reads never raise: they degrade from fresh cache to the backend to the stale
cache and finally to an empty/zeroed result. Writes validate the vehicle ID
before any network call and raise FareUpdateError once every endpoint and
the retry budget are exhausted.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple, Type

import httpx

from backend_client import BackendClient
from cache_store import FARE_CACHE_KEY, VEHICLE_CACHE_KEY, SingleFlight, TTLCache
from events import DomainEvent, EventBus
from models import camel_to_snake, coerce_number, dual_case, pick
from vehicle_ids import VehicleIdValidator, normalize
from write_path import UpdateResult, WritePolicy, post_first_success, with_retries

VEHICLES_DATA_ENDPOINT = "/api/fares/vehicles-data.php"

# attr, camelCase key, extra accepted source keys
FieldSpec = Tuple[str, str, Tuple[str, ...]]


@dataclass
class FareRecord:
    """Base fare record; subclasses append to FIELDS."""
    vehicle_id: str
    base_price: float = 0
    price_per_km: float = 0

    FIELDS: ClassVar[Tuple[FieldSpec, ...]] = (
        ("base_price", "basePrice", ("price",)),
        ("price_per_km", "pricePerKm", ()),
    )

    @classmethod
    def field_sources(cls, spec: FieldSpec) -> Tuple[str, ...]:
        attr, camel, extra = spec
        return (camel, camel_to_snake(camel), attr) + tuple(extra)

    @classmethod
    def from_record(cls, raw: Mapping[str, Any], vehicle_id: Optional[str] = None) -> "FareRecord":
        resolved_id = vehicle_id or pick(raw, ("vehicleId", "vehicle_id", "id")) or ""
        values = {
            spec[0]: coerce_number(pick(raw, cls.field_sources(spec)))
            for spec in cls.FIELDS
        }
        return cls(vehicle_id=str(resolved_id), **values)

    @classmethod
    def camel_fields(cls) -> List[str]:
        return [camel for _attr, camel, _extra in cls.FIELDS]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"vehicleId": self.vehicle_id}
        for attr, camel, _extra in self.FIELDS:
            value = getattr(self, attr)
            data[camel] = int(value) if float(value).is_integer() else value
        return data

    def to_payload(self) -> Dict[str, Any]:
        return dual_case(self.to_dict())


class FareCategoryService(ABC):
    """
    Abstract base class for one trip category's fares.

    Subclasses set the class attributes below and implement ``calculate``.
    Dependencies are injected so the backend, cache and event bus can be
    swapped in tests.
    """

    trip_type: ClassVar[str]
    cache_key: ClassVar[str]
    read_endpoints: ClassVar[Sequence[str]]
    write_endpoints: ClassVar[Sequence[str]]
    record_cls: ClassVar[Type[FareRecord]]
    updated_event: ClassVar[str]
    embedded_key: ClassVar[str]

    def __init__(
        self,
        client: Optional[BackendClient],
        cache: TTLCache,
        validator: VehicleIdValidator,
        event_bus: Optional[EventBus] = None,
        write_policy: Optional[WritePolicy] = None,
        request_timeout_s: float = 10.0,
    ) -> None:
        self.client = client
        self.cache = cache
        self.validator = validator
        self.event_bus = event_bus
        self.write_policy = write_policy or WritePolicy()
        self.request_timeout_s = request_timeout_s
        self._singleflight = SingleFlight()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def canonical_id(self, raw_id: Any) -> Optional[str]:
        """Mapped token for ``raw_id``, else its normalized spelling."""
        return self.validator.validate(raw_id) or normalize(str(raw_id))

    def _extract_fares(self, payload: Any) -> Dict[str, Dict[str, Any]]:
        """Pull ``{vehicle_id: fare dict}`` out of any known response shape."""
        fares: Any = payload
        if isinstance(payload, dict):
            for key in ("fares", "data"):
                if isinstance(payload.get(key), (dict, list)):
                    fares = payload[key]
                    break

        result: Dict[str, Dict[str, Any]] = {}
        if isinstance(fares, dict):
            for raw_id, entry in fares.items():
                if not isinstance(entry, dict):
                    continue
                key = self.canonical_id(raw_id)
                if key:
                    result[key] = entry
        elif isinstance(fares, list):
            for entry in fares:
                if not isinstance(entry, dict):
                    continue
                raw_id = pick(entry, ("vehicleId", "vehicle_id", "id"))
                if raw_id is None:
                    continue
                key = self.canonical_id(raw_id)
                if key:
                    result[key] = entry
        return result

    def _records(self, fares: Mapping[str, Any]) -> Dict[str, FareRecord]:
        return {
            key: self.record_cls.from_record(entry, vehicle_id=key)
            for key, entry in fares.items()
            if isinstance(entry, dict)
        }

    async def get_all_fares(self, force_refresh: bool = False) -> Dict[str, FareRecord]:
        if not force_refresh:
            cached = self.cache.get(self.cache_key)
            if isinstance(cached, dict) and cached:
                return self._records(cached)
        return await self._singleflight.run(
            f"{self.cache_key}:{force_refresh}", self._fetch_all_fares
        )

    async def _fetch_all_fares(self) -> Dict[str, FareRecord]:
        if self.client is not None:
            for endpoint in self.read_endpoints:
                print(f"[fares:{self.trip_type}] fetching {endpoint}")
                try:
                    payload = await self.client.get_json(
                        endpoint, params={"force": "true"}, timeout_s=self.request_timeout_s
                    )
                except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as exc:
                    print(f"[fares:{self.trip_type}] {endpoint} failed: {exc!r}")
                    continue
                fares = self._extract_fares(payload)
                if not fares:
                    print(f"[fares:{self.trip_type}] {endpoint} returned no fares")
                    continue
                records = self._records(fares)
                self.cache.set(self.cache_key, {k: r.to_dict() for k, r in records.items()})
                return records

        stale = self.cache.get_stale(self.cache_key)
        if isinstance(stale, dict) and stale:
            print(f"[fares:{self.trip_type}] using stale cached fares")
            return self._records(stale)
        print(f"[fares:{self.trip_type}] no fares available")
        return {}

    async def get_fares_for_vehicle(self, vehicle_id: Any) -> FareRecord:
        """Resolve one vehicle's fares; never raises.

        Order: fresh cache, direct per-vehicle read, all fares, the fares
        embedded in the vehicles-data payload, then a zeroed record.
        """
        canonical = self.validator.validate(vehicle_id)
        if canonical is None:
            print(f"[fares:{self.trip_type}] unknown vehicle {vehicle_id!r}, returning zeroed fares")
            return self.record_cls(vehicle_id=normalize(str(vehicle_id)) or "")

        cached = self.cache.get(self.cache_key)
        if isinstance(cached, dict) and isinstance(cached.get(canonical), dict):
            return self.record_cls.from_record(cached[canonical], vehicle_id=canonical)

        if self.client is not None and self.read_endpoints:
            endpoint = self.read_endpoints[0]
            try:
                payload = await self.client.get_json(
                    endpoint, params={"vehicle_id": canonical}, timeout_s=self.request_timeout_s
                )
                entry = self._extract_fares(payload).get(canonical)
                if entry is not None:
                    return self.record_cls.from_record(entry, vehicle_id=canonical)
            except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as exc:
                print(f"[fares:{self.trip_type}] direct fetch for {canonical} failed: {exc!r}")

        all_fares = await self.get_all_fares()
        if canonical in all_fares:
            return all_fares[canonical]

        embedded = await self._embedded_fares(canonical)
        if embedded is not None:
            return embedded

        print(f"[fares:{self.trip_type}] no fares found for {canonical}, using zeroed record")
        return self.record_cls(vehicle_id=canonical)

    async def _embedded_fares(self, canonical: str) -> Optional[FareRecord]:
        if self.client is None:
            return None
        try:
            payload = await self.client.get_json(
                VEHICLES_DATA_ENDPOINT, params={"force": "true"}, timeout_s=self.request_timeout_s
            )
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as exc:
            print(f"[fares:{self.trip_type}] vehicles-data fetch failed: {exc!r}")
            return None
        vehicles = payload.get("vehicles") if isinstance(payload, dict) else payload
        if not isinstance(vehicles, list):
            return None
        for vehicle in vehicles:
            if not isinstance(vehicle, dict):
                continue
            raw_id = pick(vehicle, ("id", "vehicleId", "vehicle_id"))
            if raw_id is None or self.validator.validate(raw_id) != canonical:
                continue
            embedded = vehicle.get(self.embedded_key)
            if isinstance(embedded, dict):
                return self.record_cls.from_record(embedded, vehicle_id=canonical)
        return None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _payload_for(self, canonical: str, prices: Mapping[str, Any]) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"vehicleId": canonical, "tripType": self.trip_type}
        for spec in self.record_cls.FIELDS:
            value = pick(prices, self.record_cls.field_sources(spec))
            if value is not None:
                fields[spec[1]] = coerce_number(value)
        return dual_case(fields)

    async def update_fares(self, vehicle_id: Any, prices: Mapping[str, Any]) -> UpdateResult:
        canonical = self.validator.require(vehicle_id)
        payload = self._payload_for(canonical, prices)
        operation = f"{self.trip_type} fare update for {canonical}"

        async def _attempt() -> UpdateResult:
            return await post_first_success(
                self.client, self.write_endpoints, payload, operation, self.write_policy
            )

        result = await with_retries(
            _attempt,
            retries=self.write_policy.retries,
            delay_s=self.write_policy.retry_delay_s,
        )
        if result.simulated:
            return result
        self.cache.invalidate_many([self.cache_key, FARE_CACHE_KEY, VEHICLE_CACHE_KEY])
        if self.event_bus is not None:
            prices_out = {k: v for k, v in payload.items() if k in self.record_cls.camel_fields()}
            self.event_bus.publish(
                DomainEvent(
                    self.updated_event,
                    vehicle_id=canonical,
                    trip_type=self.trip_type,
                    details={"prices": prices_out},
                )
            )
        return result

    # -------------------------------------------------------------------------
    # Calculation
    # -------------------------------------------------------------------------

    @abstractmethod
    async def calculate(self, vehicle_id: Any, **params: Any) -> float:
        """
        Compute a trip fare for ``vehicle_id`` from its fare record.

        Returns 0 when the record cannot produce a positive fare.
        """
        pass


# Export public API
__all__ = [
    "FareRecord",
    "FareCategoryService",
    "VEHICLES_DATA_ENDPOINT",
]
