"""Outstation (inter-city) fares: one-way and round trips priced per km."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Tuple

from cache_store import OUTSTATION_FARES_KEY
from events import TRIP_FARES_UPDATED
from fare_validation import validate_fare_amount
from models import coerce_number

from . import FareCategoryService, FareRecord, FieldSpec

ONE_WAY = "one-way"
ROUND_TRIP = "round-trip"

# Round trips fall back to discounted one-way rates when no explicit price exists.
ROUND_TRIP_BASE_FACTOR = 0.95
ROUND_TRIP_PER_KM_FACTOR = 0.85


@dataclass
class OutstationFare(FareRecord):
    driver_allowance: float = 0
    night_halt_charge: float = 0
    round_trip_base_price: float = 0
    round_trip_price_per_km: float = 0

    FIELDS: ClassVar[Tuple[FieldSpec, ...]] = FareRecord.FIELDS + (
        ("driver_allowance", "driverAllowance", ()),
        ("night_halt_charge", "nightHaltCharge", ("night_halt",)),
        ("round_trip_base_price", "roundTripBasePrice", ("roundtrip_base_price",)),
        ("round_trip_price_per_km", "roundTripPricePerKm", ("roundtrip_price_per_km",)),
    )


def outstation_fare(record: OutstationFare, distance_km: float, trip_mode: str = ONE_WAY) -> float:
    distance = coerce_number(distance_km)
    if trip_mode == ONE_WAY:
        base = record.base_price
        per_km = record.price_per_km
    else:
        base = record.round_trip_base_price or record.base_price * ROUND_TRIP_BASE_FACTOR
        per_km = record.round_trip_price_per_km or record.price_per_km * ROUND_TRIP_PER_KM_FACTOR
    fare = base + distance * per_km
    return fare if fare > 0 else 0


class OutstationFareService(FareCategoryService):
    trip_type = "outstation"
    cache_key = OUTSTATION_FARES_KEY
    read_endpoints = ("/api/outstation-fares", "/api/outstation-fares.php")
    write_endpoints = (
        "/api/direct-outstation-fares",
        "/api/direct-outstation-fares.php",
        "/api/admin/direct-outstation-fares.php",
    )
    record_cls = OutstationFare
    updated_event = TRIP_FARES_UPDATED
    embedded_key = "outstationFares"

    async def calculate(self, vehicle_id: Any, distance_km: float = 0, trip_mode: str = ONE_WAY, **_: Any) -> float:
        canonical = self.canonical_id(vehicle_id)
        record = await self.get_fares_for_vehicle(vehicle_id)
        fare = outstation_fare(record, distance_km, trip_mode)
        if fare <= 0:
            print(f"[fares:outstation] no positive fare for {vehicle_id} ({trip_mode}, {distance_km} km)")
        elif not validate_fare_amount(fare, canonical, self.trip_type):
            print(f"[fares:outstation] fare {fare} for {vehicle_id} is outside the expected range")
        return fare


__all__ = ["OutstationFare", "OutstationFareService", "outstation_fare", "ONE_WAY", "ROUND_TRIP"]
