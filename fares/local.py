"""Local hourly-package fares."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Tuple

from cache_store import LOCAL_FARES_KEY
from events import LOCAL_FARES_UPDATED
from fare_validation import validate_fare_amount

from . import FareCategoryService, FareRecord, FieldSpec

# package name -> record attribute
PACKAGES: Dict[str, str] = {
    "4hr40km": "price_4hrs_40km",
    "8hr80km": "price_8hrs_80km",
    "10hr100km": "price_10hrs_100km",
}


@dataclass
class LocalFare(FareRecord):
    price_4hrs_40km: float = 0
    price_8hrs_80km: float = 0
    price_10hrs_100km: float = 0
    price_extra_km: float = 0
    price_extra_hour: float = 0

    FIELDS: ClassVar[Tuple[FieldSpec, ...]] = FareRecord.FIELDS + (
        ("price_4hrs_40km", "price4hrs40km", ("package4hr40km", "hr4km40Price", "local_package_4hr")),
        ("price_8hrs_80km", "price8hrs80km", ("package8hr80km", "hr8km80Price", "local_package_8hr")),
        ("price_10hrs_100km", "price10hrs100km", ("package10hr100km", "hr10km100Price", "local_package_10hr")),
        ("price_extra_km", "priceExtraKm", ("extraKmRate", "extra_km_rate", "extraKmCharge")),
        ("price_extra_hour", "priceExtraHour", ("extraHourRate", "extra_hour_rate", "extraHourCharge")),
    )


def local_fare(record: LocalFare, package: str) -> float:
    attr = PACKAGES.get(package)
    if attr is None:
        return 0
    fare = getattr(record, attr)
    return fare if fare > 0 else 0


class LocalFareService(FareCategoryService):
    trip_type = "local"
    cache_key = LOCAL_FARES_KEY
    read_endpoints = ("/api/local-fares", "/api/local-fares.php")
    write_endpoints = (
        "/api/direct-local-fares",
        "/api/direct-local-fares.php",
        "/api/admin/direct-local-fares.php",
    )
    record_cls = LocalFare
    updated_event = LOCAL_FARES_UPDATED
    embedded_key = "localFares"

    async def calculate(self, vehicle_id: Any, package: str = "8hr80km", **_: Any) -> float:
        if package not in PACKAGES:
            print(f"[fares:local] unsupported package {package!r}")
            return 0
        canonical = self.canonical_id(vehicle_id)
        record = await self.get_fares_for_vehicle(vehicle_id)
        fare = local_fare(record, package)
        if fare <= 0:
            print(f"[fares:local] no price for {vehicle_id} package {package}")
        elif not validate_fare_amount(fare, canonical, self.trip_type):
            print(f"[fares:local] fare {fare} for {vehicle_id} is outside the expected range")
        return fare


__all__ = ["LocalFare", "LocalFareService", "local_fare", "PACKAGES"]
