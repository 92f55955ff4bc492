"""Vehicle reads and pricing writes on top of ``VehicleDataFetcher``."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from cache_store import CATEGORY_FARE_KEYS, FARE_CACHE_KEY, VEHICLE_CACHE_KEY
from events import VEHICLE_TABLES_SYNCED, DomainEvent
from models import VEHICLE_PRICE_FIELDS, Vehicle, coerce_number, dual_case
from vehicle_data import VehicleDataFetcher
from write_path import UpdateResult, WritePolicy, post_first_success, with_retries


class VehicleService:
    def __init__(self, fetcher: VehicleDataFetcher, write_policy: Optional[WritePolicy] = None) -> None:
        self.fetcher = fetcher
        self.write_policy = write_policy or fetcher.write_policy

    @property
    def validator(self):
        return self.fetcher.validator

    async def get_vehicles(self, force_refresh: bool = False) -> List[Vehicle]:
        records = await self.fetcher.fetch_vehicle_data(force_refresh)
        vehicles: List[Vehicle] = []
        for record in records:
            vehicle = Vehicle.from_record(record)
            if vehicle is None:
                print(f"[vehicle_service] skipping record without an ID: {record!r}")
                continue
            vehicles.append(vehicle)
        return vehicles

    async def refresh_vehicles(self) -> List[Vehicle]:
        vehicles = await self.get_vehicles(force_refresh=True)
        print(f"[vehicle_service] refreshed {len(vehicles)} vehicles")
        return vehicles

    async def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        canonical = self.validator.require(vehicle_id)
        for vehicle in await self.get_vehicles():
            if self.validator.validate(vehicle.id) == canonical:
                return vehicle
        return None

    async def update_vehicle(self, vehicle_id: Any, prices: Mapping[str, Any]) -> UpdateResult:
        """Write price fields for one vehicle.

        The ID is validated before any network call. Unknown field names are
        ignored; numeric fields are coerced. The whole write is retried by the
        policy's budget before the error reaches the caller.
        """
        canonical = self.validator.require(vehicle_id)
        fields: Dict[str, Any] = {"id": canonical, "vehicleId": canonical}
        for key, value in prices.items():
            if key in VEHICLE_PRICE_FIELDS:
                fields[key] = coerce_number(value)
            elif key == "isActive":
                fields[key] = bool(value)
        payload = dual_case(fields)

        async def _attempt() -> UpdateResult:
            return await post_first_success(
                self.fetcher.client,
                self.fetcher.update_endpoints,
                payload,
                f"vehicle update for {canonical}",
                self.write_policy,
            )

        result = await with_retries(
            _attempt,
            retries=self.write_policy.retries,
            delay_s=self.write_policy.retry_delay_s,
        )
        if result.simulated:
            return result
        self.fetcher.cache.invalidate_many([VEHICLE_CACHE_KEY, FARE_CACHE_KEY, *CATEGORY_FARE_KEYS])
        if self.fetcher.event_bus is not None:
            self.fetcher.event_bus.publish(DomainEvent(VEHICLE_TABLES_SYNCED, vehicle_id=canonical))
        return result

    async def deactivate_vehicle(self, vehicle_id: Any) -> UpdateResult:
        return await self.update_vehicle(vehicle_id, {"isActive": False})

    async def update_vehicle_pricing(self, vehicles: Sequence[Any]) -> UpdateResult:
        return await with_retries(
            lambda: self.fetcher.update_vehicle_data(vehicles),
            retries=self.write_policy.retries,
            delay_s=self.write_policy.retry_delay_s,
        )


__all__ = ["VehicleService"]
