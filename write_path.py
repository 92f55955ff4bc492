"""Shared multi-endpoint write loop and the caller-side retry helper."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

import httpx

from backend_client import BackendClient
from errors import FareUpdateError, VehicleIdError


@dataclass
class UpdateResult:
    success: bool
    message: str
    endpoint: Optional[str] = None
    simulated: bool = False
    response: Any = None
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "endpoint": self.endpoint,
            "simulated": self.simulated,
            "attempts": self.attempts,
        }


@dataclass
class WritePolicy:
    allow_simulated_success_on_total_failure: bool = False
    retries: int = 2
    retry_delay_s: float = 1.0
    extra_headers: Dict[str, str] = field(default_factory=dict)


def _body_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _is_rejection(body: Any) -> bool:
    return isinstance(body, dict) and str(body.get("status", "")).lower() == "error"


async def post_first_success(
    client: Optional[BackendClient],
    endpoints: Sequence[str],
    payload: Any,
    operation: str,
    policy: WritePolicy,
) -> UpdateResult:
    """POST ``payload`` to each endpoint in order until one accepts it.

    A 2xx whose JSON body reports ``status: error`` counts as a rejection and
    the loop moves on. When every endpoint fails, ``FareUpdateError`` is
    raised unless the policy allows a simulated success.
    """
    last_exc: Optional[BaseException] = None
    rejected_message: Optional[str] = None
    attempts = 0

    if client is None:
        last_exc = RuntimeError("backend client not configured")
    else:
        for index, endpoint in enumerate(endpoints, start=1):
            attempts += 1
            print(f"[write] {operation}: attempt {index}/{len(endpoints)} {endpoint}")
            try:
                response = await client.post_json(endpoint, payload, extra_headers=policy.extra_headers)
            except (httpx.HTTPError, asyncio.TimeoutError) as exc:
                print(f"[write] {operation}: {endpoint} failed: {exc!r}")
                last_exc = exc
                continue

            body = _body_or_none(response)
            if not 200 <= response.status_code < 300:
                print(f"[write] {operation}: {endpoint} returned HTTP {response.status_code}")
                last_exc = httpx.HTTPStatusError(
                    f"HTTP {response.status_code}", request=response.request, response=response
                )
                continue
            if _is_rejection(body):
                rejected_message = str(body.get("message") or "rejected by server")
                print(f"[write] {operation}: {endpoint} rejected: {rejected_message}")
                continue

            print(f"[write] {operation}: succeeded at {endpoint}")
            return UpdateResult(
                success=True,
                message=f"{operation} succeeded",
                endpoint=endpoint,
                response=body,
                attempts=attempts,
            )

    if policy.allow_simulated_success_on_total_failure:
        print(f"[write] {operation}: every endpoint failed; reporting SIMULATED success (demo policy)")
        return UpdateResult(
            success=True,
            message=f"{operation} simulated after total failure",
            simulated=True,
            attempts=attempts,
        )

    if rejected_message is not None and last_exc is None:
        raise FareUpdateError(operation, FareUpdateError.SERVER_REJECTED, rejected_message)
    raise FareUpdateError(
        operation,
        FareUpdateError.NETWORK,
        str(last_exc) if last_exc else "no endpoint accepted the update",
        cause=last_exc,
    )


async def with_retries(
    op: Callable[[], Awaitable[Any]],
    retries: int = 2,
    delay_s: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """Re-invoke a whole write up to ``retries`` more times.

    Only network failures are retried; validation errors and writes the
    server refused propagate at once. The last error propagates once the
    budget is spent.
    """
    attempt = 0
    while True:
        try:
            return await op()
        except VehicleIdError:
            raise
        except FareUpdateError as exc:
            if exc.kind != FareUpdateError.NETWORK or attempt >= retries:
                raise
            attempt += 1
            print(f"[write] retry {attempt}/{retries} after: {exc}")
            await sleep(delay_s)


__all__ = ["UpdateResult", "WritePolicy", "post_first_success", "with_retries"]
