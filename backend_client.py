"""Async client for the cab booking PHP backend."""
from __future__ import annotations

import asyncio
import os
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

DEFAULT_API_VERSION = "1.0.55"

NO_CACHE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _now_ms() -> int:
    return int(time.time() * 1000)


class BackendClient:
    """Thin wrapper that applies the backend's request conventions.

    Every request carries a ``_t=<epoch-ms>`` cache-busting parameter and the
    no-cache header set. Writes additionally send ``X-Force-Refresh`` and
    ``X-API-Version``. Each call is bounded by ``asyncio.wait_for`` on top of
    the httpx timeout so a hung connection falls through to the caller's next
    tier.
    """

    def __init__(
        self,
        base_url: str,
        api_version: str = DEFAULT_API_VERSION,
        read_timeout_s: float = 10.0,
        write_timeout_s: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        record_api_call_fn: Optional[Callable[[str, str, int], None]] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_version = api_version
        self._read_timeout_s = read_timeout_s
        self._write_timeout_s = write_timeout_s
        self._transport = transport
        self._record_api_call = record_api_call_fn
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_env(
        cls,
        record_api_call_fn: Optional[Callable[[str, str, int], None]] = None,
    ) -> "BackendClient":
        """Build a ``BackendClient`` using environment configuration.

        Required environment variables:
        * ``FARE_API_BASE`` - Example: ``https://cabs.example.com``

        Optional:
        * ``FARE_API_VERSION`` - value of the ``X-API-Version`` header.
        * ``REQUEST_TIMEOUT_S`` / ``WRITE_TIMEOUT_S`` - per-attempt bounds.
        """

        base_url = (os.getenv("FARE_API_BASE") or "").strip()
        missing: List[str] = []
        if not base_url:
            missing.append("FARE_API_BASE")
        if missing:
            raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

        api_version = (os.getenv("FARE_API_VERSION") or DEFAULT_API_VERSION).strip()
        read_timeout = float(os.getenv("REQUEST_TIMEOUT_S", "10"))
        write_timeout = float(os.getenv("WRITE_TIMEOUT_S", "20"))

        return cls(
            base_url=base_url,
            api_version=api_version,
            read_timeout_s=read_timeout,
            write_timeout_s=write_timeout,
            record_api_call_fn=record_api_call_fn,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._write_timeout_s, connect=5.0),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def bypass_headers(self) -> Dict[str, str]:
        """Headers that force the backend and any proxy to skip caches."""
        return {
            **NO_CACHE_HEADERS,
            "X-Force-Refresh": "true",
            "X-API-Version": self._api_version,
        }

    def _record(self, method: str, path: str, status: int) -> None:
        if self._record_api_call:
            self._record_api_call(method, f"{self._base_url}{path}", status)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        timeout_s: float,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        json: Any = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> httpx.Response:
        client = await self._ensure_client()
        query: Dict[str, Any] = {k: v for k, v in (params or {}).items() if v is not None}
        query["_t"] = _now_ms()
        try:
            response = await asyncio.wait_for(
                client.request(
                    method,
                    path,
                    params=query,
                    headers=dict(headers or {}),
                    json=json,
                    data=data,
                    timeout=timeout_s,
                ),
                timeout=timeout_s,
            )
        except (httpx.HTTPError, asyncio.TimeoutError):
            self._record(method, path, 0)
            raise
        self._record(method, path, response.status_code)
        return response

    async def get_json(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        timeout_s: Optional[float] = None,
    ) -> Any:
        """GET ``path`` and decode the JSON body.

        Raises ``httpx.HTTPStatusError`` for non-2xx responses and
        ``ValueError`` when the body is not JSON.
        """
        response = await self._send(
            "GET",
            path,
            timeout_s=timeout_s if timeout_s is not None else self._read_timeout_s,
            params=params,
            headers=NO_CACHE_HEADERS,
        )
        response.raise_for_status()
        return response.json()

    async def post_json(
        self,
        path: str,
        payload: Any,
        extra_headers: Optional[Mapping[str, str]] = None,
        timeout_s: Optional[float] = None,
    ) -> httpx.Response:
        """POST a JSON payload and return the raw response.

        Status handling is left to the caller because write paths treat some
        2xx bodies as rejections.
        """
        headers = {**self.bypass_headers(), "Content-Type": "application/json"}
        if extra_headers:
            headers.update(extra_headers)
        return await self._send(
            "POST",
            path,
            timeout_s=timeout_s if timeout_s is not None else self._write_timeout_s,
            headers=headers,
            json=payload,
        )


__all__ = ["BackendClient", "NO_CACHE_HEADERS", "DEFAULT_API_VERSION"]
