"""
Cab Fare Data Service: Vehicle & Fare API (FastAPI)

Purpose
=======
Front the cab booking PHP backend with a resilient read/write layer for
vehicle and fare data. Reads always resolve (cache, redundant endpoints,
mock fixture, stale cache, built-in defaults); writes validate the vehicle
ID first and surface a typed error when every endpoint fails.

Key features
------------
- Vehicle list with multi-endpoint fallback and TTL cache.
- Outstation / local / airport fare reads, writes and quotes.
- Vehicle ID normalization lookup.
- REST endpoints + Server-Sent Events (SSE) stream of domain events.

Run
---
$ uvicorn app:app --reload --port 8080

Environment
-----------
- PYTHON >= 3.10
- pip install fastapi uvicorn httpx pydantic
"""

from __future__ import annotations
from typing import Dict, Optional, Any, Callable
import asyncio, time, os, json
from collections import deque
from pathlib import Path

from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from backend_client import BackendClient
from cache_store import VEHICLE_CACHE_KEY, CacheStore, JsonFileCacheStore, TTLCache
from errors import DataServiceError, FareUpdateError, VehicleIdError
from events import EventBus
from fare_service import FareService, UnknownTripType
from fare_validation import (
    generate_fare_checksum,
    get_valid_fare_range,
    get_vehicle_pricing_tier,
    validate_fare_amount,
)
from vehicle_data import VehicleDataFetcher
from vehicle_ids import DEFAULT_MAPPINGS_PATH, VehicleIdValidator, load_vehicle_id_mappings, normalize
from vehicle_service import VehicleService
from write_path import WritePolicy

# ---------------------------
# Config
# ---------------------------
def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}

VEHICLE_CACHE_TTL_S = float(os.getenv("VEHICLE_CACHE_TTL_S", "120"))
FARE_CACHE_TTL_S = float(os.getenv("FARE_CACHE_TTL_S", "300"))
REQUEST_TIMEOUT_S = float(os.getenv("REQUEST_TIMEOUT_S", "10"))
MOCK_TIMEOUT_S = float(os.getenv("MOCK_TIMEOUT_S", "3"))
ALLOW_SIMULATED_SUCCESS = _env_flag("ALLOW_SIMULATED_SUCCESS")
WRITE_RETRIES = int(os.getenv("WRITE_RETRIES", "2"))
WRITE_RETRY_DELAY_S = float(os.getenv("WRITE_RETRY_DELAY_S", "1.0"))
VEHICLE_ID_MAPPINGS_PATH = Path(os.getenv("VEHICLE_ID_MAPPINGS_PATH", str(DEFAULT_MAPPINGS_PATH)))

# Data directories (support multiple mirrored volumes)
DATA_DIRS = [Path(p) for p in os.getenv("DATA_DIRS", "/data").split(":")]
PRIMARY_DATA_DIR = DATA_DIRS[0]
FARE_CACHE_PATH = PRIMARY_DATA_DIR / "fare_cache.json"

# ---------------------------
# API call log
# ---------------------------
API_CALL_LOG = deque(maxlen=100)

def record_api_call(method: str, url: str, status: int) -> None:
    item = {"ts": int(time.time()*1000), "method": method, "url": url, "status": status}
    API_CALL_LOG.append(item)

# ---------------------------
# App & state
# ---------------------------
app = FastAPI(title="Cab Fare Data Service")


def default_write_policy() -> WritePolicy:
    return WritePolicy(
        allow_simulated_success_on_total_failure=ALLOW_SIMULATED_SUCCESS,
        retries=WRITE_RETRIES,
        retry_delay_s=WRITE_RETRY_DELAY_S,
    )


def install_services(
    state: Any,
    client: Optional[BackendClient],
    store: CacheStore,
    validator: Optional[VehicleIdValidator] = None,
    write_policy: Optional[WritePolicy] = None,
    clock: Callable[[], float] = time.time,
) -> None:
    """Wire the data layer onto ``state`` (normally ``app.state``)."""
    policy = write_policy or default_write_policy()
    validator = validator or VehicleIdValidator(load_vehicle_id_mappings(VEHICLE_ID_MAPPINGS_PATH))
    bus = EventBus()
    vehicle_cache = TTLCache(store, VEHICLE_CACHE_TTL_S, clock=clock)
    fare_cache = TTLCache(store, FARE_CACHE_TTL_S, clock=clock)
    fetcher = VehicleDataFetcher(
        client,
        vehicle_cache,
        validator,
        event_bus=bus,
        mock_timeout_s=MOCK_TIMEOUT_S,
        request_timeout_s=REQUEST_TIMEOUT_S,
        write_policy=policy,
    )
    state.backend_client = client
    state.cache_store = store
    state.validator = validator
    state.event_bus = bus
    state.vehicle_cache = vehicle_cache
    state.vehicle_fetcher = fetcher
    state.vehicle_service = VehicleService(fetcher, write_policy=policy)
    state.fare_service = FareService(
        client,
        fare_cache,
        validator,
        event_bus=bus,
        write_policy=policy,
        request_timeout_s=REQUEST_TIMEOUT_S,
    )


@app.on_event("startup")
async def init_services() -> None:
    try:
        client = BackendClient.from_env(record_api_call_fn=record_api_call)
    except RuntimeError as exc:
        print(f"[backend] client not configured, serving cache and defaults only: {exc}")
        client = None
    install_services(app.state, client, JsonFileCacheStore(FARE_CACHE_PATH))
    if ALLOW_SIMULATED_SUCCESS:
        print("[write] ALLOW_SIMULATED_SUCCESS is on; failed writes will be reported as simulated successes")


@app.on_event("shutdown")
async def shutdown_backend_client() -> None:
    client = getattr(app.state, "backend_client", None)
    if client is not None:
        await client.aclose()


@app.exception_handler(DataServiceError)
async def data_service_error_handler(request: Request, exc: DataServiceError):
    status = 500
    if isinstance(exc, VehicleIdError):
        status = 422
    elif isinstance(exc, FareUpdateError):
        status = {
            FareUpdateError.SERVER_REJECTED: 409,
            FareUpdateError.VALIDATION: 422,
        }.get(exc.kind, 502)
    print(f"[app] {request.method} {request.url.path} -> {status}: {exc}")
    return JSONResponse({"detail": str(exc)}, status_code=status)


@app.exception_handler(UnknownTripType)
async def unknown_trip_type_handler(request: Request, exc: UnknownTripType):
    return JSONResponse({"detail": f"Unknown trip type: {exc.args[0]!r}"}, status_code=404)


def _services(request: Request):
    state = request.app.state
    if not hasattr(state, "fare_service"):
        raise HTTPException(503, "services not initialised")
    return state

# ---------------------------
# Health
# ---------------------------
@app.get("/v1/health")
async def health(request: Request):
    state = _services(request)
    client = state.backend_client
    return {
        "ok": True,
        "backend": client.base_url if client is not None else None,
        "vehicle_cache_fresh": state.vehicle_cache.get(VEHICLE_CACHE_KEY) is not None,
        "simulated_writes": ALLOW_SIMULATED_SUCCESS,
    }

# ---------------------------
# Vehicles
# ---------------------------
@app.get("/v1/vehicles")
async def list_vehicles(request: Request, force: bool = Query(False)):
    vehicles = await _services(request).vehicle_service.get_vehicles(force_refresh=force)
    return {"count": len(vehicles), "vehicles": [v.to_dict() for v in vehicles]}


@app.post("/v1/vehicles/refresh")
async def refresh_vehicles(request: Request):
    vehicles = await _services(request).vehicle_service.refresh_vehicles()
    return {"count": len(vehicles), "vehicles": [v.to_dict() for v in vehicles]}


@app.get("/v1/vehicles/{vehicle_id}")
async def get_vehicle(request: Request, vehicle_id: str):
    vehicle = await _services(request).vehicle_service.get_vehicle(vehicle_id)
    if vehicle is None:
        raise HTTPException(404, f"vehicle {vehicle_id!r} not found")
    return vehicle.to_dict()


@app.put("/v1/vehicles/{vehicle_id}/pricing")
async def update_vehicle_pricing(request: Request, vehicle_id: str, payload: Dict[str, Any] = Body(...)):
    result = await _services(request).vehicle_service.update_vehicle(vehicle_id, payload)
    return result.to_dict()


@app.post("/v1/vehicles/{vehicle_id}/deactivate")
async def deactivate_vehicle(request: Request, vehicle_id: str):
    result = await _services(request).vehicle_service.deactivate_vehicle(vehicle_id)
    return result.to_dict()


@app.get("/v1/vehicle-ids/{raw_id}")
async def describe_vehicle_id(request: Request, raw_id: str):
    validator: VehicleIdValidator = _services(request).validator
    canonical = validator.validate(raw_id)
    return {
        "raw": raw_id,
        "normalized": normalize(raw_id),
        "canonical": canonical,
        "valid": canonical is not None,
        "pricingTier": get_vehicle_pricing_tier(canonical or raw_id).to_dict(),
    }

# ---------------------------
# Fares
# ---------------------------
@app.post("/v1/fares/cache/clear")
async def clear_fare_cache(request: Request):
    return _services(request).fare_service.clear_fare_cache()


@app.get("/v1/fares/{trip_type}")
async def list_fares(request: Request, trip_type: str, force: bool = Query(False)):
    service = _services(request).fare_service.category(trip_type)
    fares = await service.get_all_fares(force_refresh=force)
    return {
        "tripType": service.trip_type,
        "count": len(fares),
        "fares": {vehicle_id: record.to_dict() for vehicle_id, record in fares.items()},
    }


@app.get("/v1/fares/{trip_type}/{vehicle_id}")
async def get_vehicle_fares(request: Request, trip_type: str, vehicle_id: str):
    service = _services(request).fare_service.category(trip_type)
    record = await service.get_fares_for_vehicle(vehicle_id)
    return {"tripType": service.trip_type, "fare": record.to_dict()}


@app.put("/v1/fares/{trip_type}/{vehicle_id}")
async def update_vehicle_fares(request: Request, trip_type: str, vehicle_id: str, payload: Dict[str, Any] = Body(...)):
    service = _services(request).fare_service.category(trip_type)
    result = await service.update_fares(vehicle_id, payload)
    return result.to_dict()


@app.get("/v1/fares/{trip_type}/{vehicle_id}/quote")
async def quote_fare(
    request: Request,
    trip_type: str,
    vehicle_id: str,
    distance_km: float = Query(0.0, ge=0),
    trip_mode: str = Query("one-way"),
    package: str = Query("8hr80km"),
):
    service = _services(request).fare_service.category(trip_type)
    fare = await service.calculate(
        vehicle_id, distance_km=distance_km, trip_mode=trip_mode, package=package
    )
    canonical = service.canonical_id(vehicle_id) or vehicle_id
    min_fare, max_fare = get_valid_fare_range(canonical, service.trip_type)
    return {
        "vehicleId": canonical,
        "tripType": service.trip_type,
        "fare": fare,
        "valid": validate_fare_amount(fare, canonical, service.trip_type),
        "range": {"min": min_fare, "max": max_fare},
        "checksum": generate_fare_checksum(fare, canonical, service.trip_type),
    }

# ---------------------------
# API call log & SSE: domain events
# ---------------------------
@app.get("/v1/api_calls")
async def api_calls():
    return {"calls": list(API_CALL_LOG)}


@app.get("/v1/stream/events")
async def stream_events(request: Request):
    bus: EventBus = _services(request).event_bus

    async def gen():
        q: asyncio.Queue = bus.open_queue(maxsize=10)  # Limit queue to prevent memory bloat
        try:
            for event in list(bus.history):
                yield f"event: {event.name}\ndata: {json.dumps(event.to_dict())}\n\n"
            while True:
                encoded = await q.get()
                yield encoded
        finally:
            bus.close_queue(q)
    return StreamingResponse(gen(), media_type="text/event-stream")
