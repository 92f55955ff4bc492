"""Facade over the per-trip-type fare services."""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from backend_client import BackendClient
from cache_store import (
    CAB_TYPES_KEY,
    FARE_CACHE_KEY,
    FORCE_CACHE_REFRESH_KEY,
    VEHICLE_TYPES_KEY,
    TTLCache,
)
from events import FARE_CACHE_CLEARED, DomainEvent, EventBus
from fares import FareCategoryService, FareRecord
from fares.airport import AirportFareService
from fares.local import LocalFareService
from fares.outstation import OutstationFareService
from vehicle_ids import VehicleIdValidator
from write_path import WritePolicy

TRIP_TYPE_ALIASES = {
    "one-way": "outstation",
    "round-trip": "outstation",
    "tour": "outstation",
    "airport-transfer": "airport",
}


class UnknownTripType(LookupError):
    pass


class FareService:
    def __init__(
        self,
        client: Optional[BackendClient],
        cache: TTLCache,
        validator: VehicleIdValidator,
        event_bus: Optional[EventBus] = None,
        write_policy: Optional[WritePolicy] = None,
        request_timeout_s: float = 10.0,
    ) -> None:
        self.cache = cache
        self.event_bus = event_bus
        kwargs = dict(
            event_bus=event_bus,
            write_policy=write_policy,
            request_timeout_s=request_timeout_s,
        )
        self.categories: Dict[str, FareCategoryService] = {
            service.trip_type: service
            for service in (
                OutstationFareService(client, cache, validator, **kwargs),
                LocalFareService(client, cache, validator, **kwargs),
                AirportFareService(client, cache, validator, **kwargs),
            )
        }

    @property
    def outstation(self) -> OutstationFareService:
        return self.categories["outstation"]  # type: ignore[return-value]

    @property
    def local(self) -> LocalFareService:
        return self.categories["local"]  # type: ignore[return-value]

    @property
    def airport(self) -> AirportFareService:
        return self.categories["airport"]  # type: ignore[return-value]

    def category(self, trip_type: str) -> FareCategoryService:
        key = (trip_type or "").strip().lower()
        key = TRIP_TYPE_ALIASES.get(key, key)
        service = self.categories.get(key)
        if service is None:
            raise UnknownTripType(trip_type)
        return service

    async def get_fares_by_trip_type(self, trip_type: str, force_refresh: bool = False) -> Dict[str, FareRecord]:
        return await self.category(trip_type).get_all_fares(force_refresh=force_refresh)

    def fare_cache_keys(self) -> List[str]:
        keys = [service.cache_key for service in self.categories.values()]
        return keys + [FARE_CACHE_KEY, CAB_TYPES_KEY, VEHICLE_TYPES_KEY]

    def clear_fare_cache(self) -> Dict[str, Any]:
        keys = list(self.fare_cache_keys())
        self.cache.invalidate_many(keys)
        stamp = int(time.time() * 1000)
        try:
            self.cache.store.write(FORCE_CACHE_REFRESH_KEY, str(stamp))
        except OSError as exc:
            print(f"[fare_service] could not record forced refresh: {exc!r}")
        print(f"[fare_service] cleared fare caches: {', '.join(keys)}")
        if self.event_bus is not None:
            self.event_bus.publish(DomainEvent(FARE_CACHE_CLEARED, details={"keys": keys}))
        return {"cleared": keys, "forceCacheRefresh": stamp}


__all__ = ["FareService", "UnknownTripType", "TRIP_TYPE_ALIASES"]
