"""Vehicle records and the field-name helpers shared by the fare records."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

_CAMEL_BOUNDARY_RE = re.compile(r"(?<!^)(?=[A-Z])")

# Field names whose snake_case form the backend spells irregularly.
SNAKE_CASE_OVERRIDES: Dict[str, str] = {
    "hr8km80Price": "hr_8km_80_price",
    "hr10km100Price": "hr_10km_100_price",
    "price4hrs40km": "price_4hrs_40km",
    "price8hrs80km": "price_8hrs_80km",
    "price10hrs100km": "price_10hrs_100km",
    "capacity": "passenger_capacity",
    "ac": "ac_available",
}


def camel_to_snake(name: str) -> str:
    override = SNAKE_CASE_OVERRIDES.get(name)
    if override:
        return override
    return _CAMEL_BOUNDARY_RE.sub("_", name).lower()


def dual_case(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Return ``fields`` with every camelCase key mirrored in snake_case."""
    payload: Dict[str, Any] = {}
    for key, value in fields.items():
        payload[key] = value
        snake = camel_to_snake(key)
        if snake != key:
            payload[snake] = value
    return payload


def pick(raw: Mapping[str, Any], names: Iterable[str]) -> Any:
    """First value under ``names`` that is present and not blank."""
    for name in names:
        value = raw.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def coerce_number(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if result != result:  # NaN
        return default
    return result


def coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


def _as_int_if_whole(value: float) -> Any:
    return int(value) if float(value).is_integer() else value


# attr, camelCase key, accepted source keys, default
VEHICLE_NUMERIC_FIELDS: Sequence[Tuple[str, str, Tuple[str, ...], float]] = (
    ("base_price", "basePrice", ("basePrice", "base_price", "price"), 0),
    ("price_per_km", "pricePerKm", ("pricePerKm", "price_per_km"), 0),
    ("capacity", "capacity", ("capacity", "passenger_capacity", "passengerCapacity"), 4),
    ("luggage_capacity", "luggageCapacity", ("luggageCapacity", "luggage_capacity", "luggage"), 2),
    ("hr8km80_price", "hr8km80Price", ("hr8km80Price", "hr_8km_80_price", "local_package_8hr"), 0),
    ("hr10km100_price", "hr10km100Price", ("hr10km100Price", "hr_10km_100_price", "local_package_10hr"), 0),
    ("driver_allowance", "driverAllowance", ("driverAllowance", "driver_allowance"), 300),
    ("night_halt_charge", "nightHaltCharge", ("nightHaltCharge", "night_halt_charge"), 300),
    ("airport_fee", "airportFee", ("airportFee", "airport_fee"), 0),
)


@dataclass
class Vehicle:
    """A bookable cab category."""
    id: str
    name: str
    base_price: float = 0
    price_per_km: float = 0
    capacity: int = 4
    luggage_capacity: int = 2
    ac: bool = True
    hr8km80_price: float = 0
    hr10km100_price: float = 0
    driver_allowance: float = 300
    night_halt_charge: float = 300
    airport_fee: float = 0
    amenities: List[str] = field(default_factory=list)
    is_active: bool = True
    description: str = ""
    image: str = ""

    @classmethod
    def from_record(cls, raw: Mapping[str, Any]) -> Optional["Vehicle"]:
        """Build a vehicle from any of the backend's record spellings.

        Returns ``None`` when the record carries no usable identifier.
        """
        if not isinstance(raw, Mapping):
            return None
        vehicle_id = pick(raw, ("id", "vehicleId", "vehicle_id", "cab_id", "cabId"))
        if vehicle_id is None:
            return None
        vehicle_id = str(vehicle_id).strip()
        name = pick(raw, ("name", "vehicleName", "vehicle_name", "cab_name")) or "Unknown Vehicle"

        numbers: Dict[str, Any] = {}
        for attr, _camel, sources, default in VEHICLE_NUMERIC_FIELDS:
            numbers[attr] = coerce_number(pick(raw, sources), default)
        numbers["capacity"] = int(numbers["capacity"])
        numbers["luggage_capacity"] = int(numbers["luggage_capacity"])

        amenities_raw = pick(raw, ("amenities",))
        if isinstance(amenities_raw, str):
            amenities = [item.strip() for item in amenities_raw.split(",") if item.strip()]
        elif isinstance(amenities_raw, list):
            amenities = [str(item).strip() for item in amenities_raw if str(item).strip()]
        else:
            amenities = []

        return cls(
            id=vehicle_id,
            name=str(name),
            ac=coerce_bool(pick(raw, ("ac", "acAvailable", "ac_available")), True),
            amenities=amenities,
            is_active=coerce_bool(pick(raw, ("isActive", "is_active")), True),
            description=str(pick(raw, ("description", "cab_description", "vehicle_description")) or ""),
            image=str(pick(raw, ("image", "cab_image", "vehicle_image")) or ""),
            **numbers,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase shape consumers read."""
        data: Dict[str, Any] = {"id": self.id, "name": self.name}
        for attr, camel, _sources, _default in VEHICLE_NUMERIC_FIELDS:
            data[camel] = _as_int_if_whole(getattr(self, attr))
        data.update({
            "ac": self.ac,
            "amenities": list(self.amenities),
            "isActive": self.is_active,
            "description": self.description,
            "image": self.image,
        })
        return data

    def to_payload(self) -> Dict[str, Any]:
        """Write payload carrying both camelCase and snake_case field names."""
        camel = self.to_dict()
        camel["vehicleId"] = self.id
        payload = dual_case(camel)
        payload["cab_id"] = self.id
        payload["vehicle_name"] = self.name
        return payload


VEHICLE_PRICE_FIELDS = frozenset(camel for _attr, camel, _s, _d in VEHICLE_NUMERIC_FIELDS)


__all__ = [
    "Vehicle",
    "VEHICLE_PRICE_FIELDS",
    "camel_to_snake",
    "dual_case",
    "pick",
    "coerce_number",
    "coerce_bool",
]
