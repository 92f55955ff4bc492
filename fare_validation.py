"""Pricing tiers, plausible fare ranges and fare integrity tokens."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from vehicle_ids import normalize


@dataclass(frozen=True)
class PricingTier:
    base_price: float
    price_per_km: float
    driver_allowance: float
    category: str
    display_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "basePrice": self.base_price,
            "pricePerKm": self.price_per_km,
            "driverAllowance": self.driver_allowance,
            "category": self.category,
            "displayName": self.display_name,
        }


# Insertion order matters for the substring match below.
PRICING_TIERS: Dict[str, PricingTier] = {
    "innova_hycross": PricingTier(5730, 22, 300, "premium_mpv", "Innova Hycross"),
    "innova_crysta": PricingTier(5500, 20, 300, "mpv", "Innova Crysta"),
    "innova": PricingTier(5500, 20, 300, "mpv", "Innova"),
    "ertiga": PricingTier(5400, 18, 250, "suv", "Ertiga"),
    "xuv": PricingTier(5400, 18, 250, "suv", "XUV"),
    "sedan": PricingTier(3900, 13, 250, "sedan", "Sedan"),
    "dzire": PricingTier(3900, 13, 250, "sedan", "Dzire"),
    "tempo": PricingTier(9000, 22, 300, "tempo", "Tempo Traveller"),
    "traveller": PricingTier(9000, 22, 300, "tempo", "Tempo Traveller"),
    "luxury": PricingTier(5000, 16, 300, "luxury", "Luxury Sedan"),
}

DEFAULT_PRICING_TIER = PricingTier(3900, 13, 250, "sedan", "Standard Vehicle")

# category -> (min for local trips, min for other trips, max)
FARE_RANGES: Dict[str, Tuple[float, float, float]] = {
    "sedan": (1000, 2000, 8000),
    "suv": (1500, 2500, 12000),
    "mpv": (2000, 3000, 15000),
    "premium_mpv": (2000, 3000, 15000),
    "luxury": (3000, 4000, 20000),
    "tempo": (4000, 5000, 25000),
}
DEFAULT_FARE_RANGE: Tuple[float, float, float] = (500, 500, 20000)


def get_vehicle_pricing_tier(vehicle_id: Any) -> PricingTier:
    normalized = normalize(str(vehicle_id))
    if not normalized:
        return DEFAULT_PRICING_TIER
    tier = PRICING_TIERS.get(normalized)
    if tier is not None:
        return tier
    for key, tier in PRICING_TIERS.items():
        if key in normalized:
            return tier
    return DEFAULT_PRICING_TIER


def get_valid_fare_range(vehicle_id: Any, trip_type: str) -> Tuple[float, float]:
    category = get_vehicle_pricing_tier(vehicle_id).category
    min_local, min_other, max_fare = FARE_RANGES.get(category, DEFAULT_FARE_RANGE)
    return (min_local if trip_type == "local" else min_other), max_fare


def validate_fare_amount(fare: Any, vehicle_id: Any, trip_type: str) -> bool:
    """True when ``fare`` is a positive number inside the vehicle's range."""
    if isinstance(fare, bool) or not isinstance(fare, (int, float)):
        return False
    if math.isnan(fare) or fare <= 0:
        return False
    min_fare, max_fare = get_valid_fare_range(vehicle_id, trip_type)
    if fare < min_fare:
        print(f"[fare_validation] fare {fare} too low for {vehicle_id} ({trip_type}), minimum {min_fare}")
        return False
    if fare > max_fare:
        print(f"[fare_validation] fare {fare} too high for {vehicle_id} ({trip_type}), maximum {max_fare}")
        return False
    return True


def _format_fare(fare: float) -> str:
    return str(int(fare)) if float(fare).is_integer() else str(fare)


def generate_fare_checksum(fare: float, vehicle_id: Any, trip_type: str) -> str:
    normalized = normalize(str(vehicle_id)) or ""
    return f"{_format_fare(fare)}_{normalized}_{trip_type}_{math.floor(fare % 100)}"


def validate_fare_checksum(fare: float, vehicle_id: Any, trip_type: str, checksum: str) -> bool:
    return checksum == generate_fare_checksum(fare, vehicle_id, trip_type)


__all__ = [
    "PricingTier",
    "PRICING_TIERS",
    "DEFAULT_PRICING_TIER",
    "get_vehicle_pricing_tier",
    "get_valid_fare_range",
    "validate_fare_amount",
    "generate_fare_checksum",
    "validate_fare_checksum",
]
