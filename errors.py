"""Exceptions raised by the vehicle/fare data layer."""
from __future__ import annotations

from typing import Optional


class DataServiceError(RuntimeError):
    """Base class for errors surfaced to callers of the data layer."""


class VehicleIdError(DataServiceError, ValueError):
    """A vehicle identifier could not be mapped to a canonical token."""

    def __init__(self, raw: object, reason: Optional[str] = None) -> None:
        self.raw = raw
        self.reason = reason or "unknown vehicle"
        super().__init__(f"Invalid vehicle ID {raw!r}: {self.reason}")


class FareUpdateError(DataServiceError):
    """A write exhausted every endpoint without a usable success."""

    NETWORK = "network"
    SERVER_REJECTED = "server_rejected"
    VALIDATION = "validation"

    def __init__(
        self,
        operation: str,
        kind: str,
        message: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.operation = operation
        self.kind = kind
        self.cause = cause
        super().__init__(f"{operation} failed ({kind}): {message}")


__all__ = ["DataServiceError", "VehicleIdError", "FareUpdateError"]
