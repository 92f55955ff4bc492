"""
Vehicle ID normalization and validation.

Historical vehicle identifiers come in many spellings: numeric legacy row IDs
("1271"), display names ("Innova Crysta"), and marketing aliases ("Dzire").
Every write must resolve to one canonical token first, and anything that does
not map is rejected rather than guessed.

Decision order for ``VehicleIdValidator.validate``:
1. Pure numeric input maps only through the numeric table.
2. The normalized string is accepted if it is in the vocabulary.
3. The normalized string is accepted through an exact alias match.
4. Otherwise the ID is rejected.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional

from errors import VehicleIdError

DEFAULT_MAPPINGS_PATH = Path(__file__).resolve().parent / "vehicle_id_mappings.json"

NUMERIC_ID_RE = re.compile(r"^\d+$")
_WHITESPACE_RE = re.compile(r"\s+")

# Used when the mapping asset is missing or unreadable.
BUILTIN_VOCABULARY = frozenset({
    "sedan", "ertiga", "innova", "innova_crysta", "innova_hycross", "etios",
    "tempo", "tempo_traveller", "luxury", "urbania", "suv", "xuv",
})
BUILTIN_ALIASES: Dict[str, str] = {
    "dzire": "sedan",
    "swift": "sedan",
    "mpv": "innova_crysta",
    "hycross": "innova_crysta",
    "crysta": "innova_crysta",
    "innovacrys": "innova_crysta",
    "traveller": "tempo_traveller",
}
BUILTIN_NUMERIC: Dict[str, str] = {
    "1": "sedan", "100": "sedan", "101": "sedan", "102": "sedan", "103": "sedan",
    "2": "ertiga", "200": "ertiga", "201": "ertiga",
    "180": "etios",
    "592": "urbania",
    "1266": "innova_crysta", "1270": "innova_crysta",
    **{str(n): "etios" for n in range(1271, 1281)},
}


def normalize(value: Any) -> Optional[str]:
    """Lowercase, trim, and replace whitespace runs with underscores."""
    if not isinstance(value, str):
        return None
    text = _WHITESPACE_RE.sub("_", value.strip().lower())
    return text or None


@dataclass(frozen=True)
class VehicleIdMappings:
    vocabulary: FrozenSet[str]
    aliases: Mapping[str, str] = field(default_factory=dict)
    numeric: Mapping[str, str] = field(default_factory=dict)
    version: Optional[int] = None

    @classmethod
    def builtin(cls) -> "VehicleIdMappings":
        return cls(
            vocabulary=BUILTIN_VOCABULARY,
            aliases=dict(BUILTIN_ALIASES),
            numeric=dict(BUILTIN_NUMERIC),
        )

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "VehicleIdMappings":
        vocab_raw = raw.get("vocabulary")
        if not isinstance(vocab_raw, list) or not vocab_raw:
            raise ValueError("mapping asset has no vocabulary")
        vocabulary = frozenset(
            token for token in (normalize(item) for item in vocab_raw) if token
        )

        def _targets(section: str, key_fn) -> Dict[str, str]:
            result: Dict[str, str] = {}
            entries = raw.get(section) or {}
            if not isinstance(entries, dict):
                return result
            for key, target in entries.items():
                canonical = normalize(target)
                if canonical not in vocabulary:
                    print(f"[vehicle_ids] dropping {section} entry {key!r} -> {target!r}: not in vocabulary")
                    continue
                result[key_fn(key)] = canonical
            return result

        aliases = _targets("aliases", lambda k: normalize(str(k)) or str(k))
        numeric = _targets("numeric", lambda k: str(k).strip())
        version = raw.get("version")
        return cls(
            vocabulary=vocabulary,
            aliases=aliases,
            numeric=numeric,
            version=version if isinstance(version, int) else None,
        )


def load_vehicle_id_mappings(path: Path = DEFAULT_MAPPINGS_PATH) -> VehicleIdMappings:
    """Load the mapping asset, falling back to the built-in tables."""
    if path.exists():
        try:
            raw = json.loads(path.read_text())
            if isinstance(raw, dict):
                return VehicleIdMappings.from_dict(raw)
            print(f"[vehicle_ids] mapping file {path} is not an object")
        except Exception as exc:
            print(f"[vehicle_ids] failed to load mappings {path}: {exc}")
    else:
        print(f"[vehicle_ids] mapping file {path} not found, using built-in tables")
    return VehicleIdMappings.builtin()


class VehicleIdValidator:
    def __init__(self, mappings: Optional[VehicleIdMappings] = None) -> None:
        self.mappings = mappings or VehicleIdMappings.builtin()

    def validate(self, raw: Any) -> Optional[str]:
        """Return the canonical token for ``raw`` or ``None`` if unmappable."""
        if isinstance(raw, int) and not isinstance(raw, bool):
            raw = str(raw)
        if not isinstance(raw, str):
            return None
        stripped = raw.strip()
        if NUMERIC_ID_RE.match(stripped):
            # Numeric IDs are ambiguous across backend tables; never pass through.
            return self.mappings.numeric.get(stripped)

        normalized = normalize(stripped)
        if normalized is None:
            return None
        if normalized in self.mappings.vocabulary:
            return normalized
        return self.mappings.aliases.get(normalized)

    def require(self, raw: Any) -> str:
        canonical = self.validate(raw)
        if canonical is not None:
            return canonical
        if isinstance(raw, int) and not isinstance(raw, bool):
            raw = str(raw)
        if isinstance(raw, str) and NUMERIC_ID_RE.match(raw.strip()):
            raise VehicleIdError(raw, "numeric ID has no known mapping")
        if normalize(raw) is None:
            raise VehicleIdError(raw, "empty or not a string")
        raise VehicleIdError(raw, "not a known vehicle type")

    def is_valid(self, raw: Any) -> bool:
        return self.validate(raw) is not None


__all__ = [
    "normalize",
    "VehicleIdMappings",
    "VehicleIdValidator",
    "load_vehicle_id_mappings",
    "DEFAULT_MAPPINGS_PATH",
]
