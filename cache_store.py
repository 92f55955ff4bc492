"""Key-value cache stores and the TTL envelope cache built on top of them."""
from __future__ import annotations

import asyncio
import json
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

VEHICLE_CACHE_KEY = "cached_vehicle_data"
FARE_CACHE_KEY = "fare_cache"
CAB_TYPES_KEY = "cabTypes"
VEHICLE_TYPES_KEY = "vehicleTypes"
FORCE_CACHE_REFRESH_KEY = "forceCacheRefresh"
OUTSTATION_FARES_KEY = "outstation_fares"
LOCAL_FARES_KEY = "local_fares"
AIRPORT_FARES_KEY = "airport_fares"
CATEGORY_FARE_KEYS = (OUTSTATION_FARES_KEY, LOCAL_FARES_KEY, AIRPORT_FARES_KEY)


@dataclass
class CacheEnvelope:
    """A cached payload plus its capture time (epoch seconds)."""
    data: Any
    timestamp: float

    def is_fresh(self, now: float, ttl_s: float) -> bool:
        return now - self.timestamp <= ttl_s

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "timestamp": self.timestamp}

    @classmethod
    def from_raw(cls, raw: Any) -> "CacheEnvelope":
        if not isinstance(raw, dict) or "data" not in raw or "timestamp" not in raw:
            raise ValueError("malformed cache envelope")
        timestamp = raw["timestamp"]
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise ValueError(f"malformed envelope timestamp: {timestamp!r}")
        return cls(data=raw["data"], timestamp=float(timestamp))


class CacheStore(ABC):
    """Minimal persistent key-value interface used by ``TTLCache``."""

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """Return the raw serialised value for ``key`` or ``None``."""

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass


class MemoryCacheStore(CacheStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._items: Dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def write(self, key: str, value: str) -> None:
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items.keys())


class JsonFileCacheStore(CacheStore):
    """All keys in one JSON object on disk, rewritten atomically on change."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._items: Dict[str, str] = {}
        self._load_sync()

    def _load_sync(self) -> None:
        self._items.clear()
        if not self._path.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
            return
        try:
            raw = json.loads(self._path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            print(f"[cache_store] ignoring unreadable cache file {self._path}: {exc}")
            return
        if not isinstance(raw, dict):
            print(f"[cache_store] ignoring cache file {self._path}: not an object")
            return
        for key, value in raw.items():
            if isinstance(value, str):
                self._items[str(key)] = value

    def _persist(self) -> None:
        payload = json.dumps(self._items, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(f"{self._path.name}.{os.getpid()}.tmp")
        tmp_path.write_text(payload)
        tmp_path.replace(self._path)

    def read(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def write(self, key: str, value: str) -> None:
        self._items[key] = value
        self._persist()

    def delete(self, key: str) -> None:
        if key in self._items:
            del self._items[key]
            self._persist()

    def keys(self) -> List[str]:
        return list(self._items.keys())


class TTLCache:
    """Timestamped envelopes over a ``CacheStore``.

    Stale entries are kept: ``get`` reports them as a miss while
    ``get_stale`` still returns them for last-resort fallback.
    """

    def __init__(
        self,
        store: CacheStore,
        ttl_s: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.ttl_s = ttl_s
        self._clock = clock

    def envelope(self, key: str) -> Optional[CacheEnvelope]:
        try:
            raw = self.store.read(key)
        except Exception as exc:
            print(f"[cache] read failed for {key}: {exc}")
            return None
        if raw is None:
            return None
        try:
            return CacheEnvelope.from_raw(json.loads(raw))
        except (ValueError, TypeError) as exc:
            print(f"[cache] corrupt entry for {key}, treating as miss: {exc}")
            return None

    def get(self, key: str) -> Any:
        env = self.envelope(key)
        if env is None:
            return None
        if not env.is_fresh(self._clock(), self.ttl_s):
            print(f"[cache] {key} expired")
            return None
        return env.data

    def get_stale(self, key: str) -> Any:
        env = self.envelope(key)
        return None if env is None else env.data

    def set(self, key: str, payload: Any) -> None:
        env = CacheEnvelope(data=payload, timestamp=self._clock())
        try:
            self.store.write(key, json.dumps(env.to_dict()))
        except (TypeError, ValueError, OSError) as exc:
            print(f"[cache] write failed for {key}: {exc}")

    def invalidate(self, key: str) -> None:
        try:
            self.store.delete(key)
        except OSError as exc:
            print(f"[cache] invalidate failed for {key}: {exc}")

    def invalidate_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.invalidate(key)


class SingleFlight:
    """Share one in-flight task per key among concurrent callers."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._inflight: Dict[str, asyncio.Task] = {}

    async def run(self, key: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        async with self._lock:
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(fn())
                self._inflight[key] = task
        try:
            return await task
        finally:
            async with self._lock:
                if self._inflight.get(key) is task:
                    del self._inflight[key]


__all__ = [
    "CacheEnvelope",
    "CacheStore",
    "MemoryCacheStore",
    "JsonFileCacheStore",
    "TTLCache",
    "SingleFlight",
    "VEHICLE_CACHE_KEY",
    "FARE_CACHE_KEY",
    "CAB_TYPES_KEY",
    "VEHICLE_TYPES_KEY",
    "FORCE_CACHE_REFRESH_KEY",
    "OUTSTATION_FARES_KEY",
    "LOCAL_FARES_KEY",
    "AIRPORT_FARES_KEY",
    "CATEGORY_FARE_KEYS",
]
