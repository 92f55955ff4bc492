"""Airport transfer fares, priced by distance tier."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Sequence, Tuple

from cache_store import AIRPORT_FARES_KEY
from events import AIRPORT_FARES_UPDATED
from fare_validation import validate_fare_amount
from models import coerce_number

from . import FareCategoryService, FareRecord, FieldSpec

# Upper distance bound (km) for tiers 1-3; anything beyond is tier 4 plus extra km.
TIER_LIMITS_KM: Sequence[float] = (15, 25, 35)


@dataclass
class AirportFare(FareRecord):
    pickup_price: float = 0
    drop_price: float = 0
    tier1_price: float = 0
    tier2_price: float = 0
    tier3_price: float = 0
    tier4_price: float = 0
    extra_km_charge: float = 0

    FIELDS: ClassVar[Tuple[FieldSpec, ...]] = FareRecord.FIELDS + (
        ("pickup_price", "pickupPrice", ("pickup",)),
        ("drop_price", "dropPrice", ("drop",)),
        ("tier1_price", "tier1Price", ("tier_1_price",)),
        ("tier2_price", "tier2Price", ("tier_2_price",)),
        ("tier3_price", "tier3Price", ("tier_3_price",)),
        ("tier4_price", "tier4Price", ("tier_4_price",)),
        ("extra_km_charge", "extraKmCharge", ("extra_km_rate",)),
    )


def airport_fare(record: AirportFare, distance_km: float) -> float:
    distance = coerce_number(distance_km)
    tiers = (record.tier1_price, record.tier2_price, record.tier3_price)
    for limit, price in zip(TIER_LIMITS_KM, tiers):
        if distance <= limit:
            return price if price > 0 else 0
    fare = record.tier4_price + max(distance - TIER_LIMITS_KM[-1], 0) * record.extra_km_charge
    return fare if fare > 0 else 0


class AirportFareService(FareCategoryService):
    trip_type = "airport"
    cache_key = AIRPORT_FARES_KEY
    read_endpoints = ("/api/airport-fares", "/api/airport-fares.php")
    write_endpoints = (
        "/api/direct-airport-fares",
        "/api/direct-airport-fares.php",
        "/api/admin/direct-airport-fares.php",
    )
    record_cls = AirportFare
    updated_event = AIRPORT_FARES_UPDATED
    embedded_key = "airportFares"

    async def calculate(self, vehicle_id: Any, distance_km: float = 0, **_: Any) -> float:
        canonical = self.canonical_id(vehicle_id)
        record = await self.get_fares_for_vehicle(vehicle_id)
        fare = airport_fare(record, distance_km)
        if fare <= 0:
            print(f"[fares:airport] no positive fare for {vehicle_id} ({distance_km} km)")
        elif not validate_fare_amount(fare, canonical, self.trip_type):
            print(f"[fares:airport] fare {fare} for {vehicle_id} is outside the expected range")
        return fare


__all__ = ["AirportFare", "AirportFareService", "airport_fare", "TIER_LIMITS_KM"]
