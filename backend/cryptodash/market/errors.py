"""Failure taxonomy for the market data core."""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Coarse failure classes used to drive retry decisions."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_DATA = "client_data"
    UNKNOWN = "unknown"


class Failure(Exception):
    """Base class for every typed failure raised or returned by the core."""

    kind: FailureKind = FailureKind.UNKNOWN

    def __init__(
        self,
        message: str,
        details: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.status_code = status_code

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return (self.message, self.details, self.status_code) == (
            other.message,
            other.details,
            other.status_code,
        )

    def __hash__(self) -> int:
        return hash((type(self), self.message, self.details, self.status_code))

    def to_dict(self) -> dict:
        return {
            "type": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
            "status_code": self.status_code,
        }


class NetworkFailure(Failure):
    """No connectivity at all: interface down, DNS resolution failed."""

    kind = FailureKind.CONNECTION


class TimeoutFailure(Failure):
    kind = FailureKind.TIMEOUT


class ConnectionFailure(Failure):
    """The network is up but the server could not be reached (refused, reset)."""

    kind = FailureKind.CONNECTION


class ApiFailure(Failure):
    """The exchange answered with an error status."""

    @property
    def kind(self) -> FailureKind:  # type: ignore[override]
        code = self.status_code or 0
        if code == 429:
            return FailureKind.RATE_LIMITED
        if code >= 500:
            return FailureKind.SERVER_ERROR
        return FailureKind.CLIENT_DATA


class DataFailure(Failure):
    """Response parsed but the payload was unusable (validation, mapping)."""

    kind = FailureKind.CLIENT_DATA


class UnknownFailure(Failure):
    kind = FailureKind.UNKNOWN


class MappingErrorReason(str, Enum):
    IDENTIFIER_MISMATCH = "identifier_mismatch"
    INVALID_NUMBER = "invalid_number"


class MappingError(DataFailure):
    """A single exchange record could not be turned into an Asset."""

    def __init__(self, reason: MappingErrorReason, message: str, details: str | None = None) -> None:
        super().__init__(message, details=details)
        self.reason = reason


class MissingSymbolsError(DataFailure):
    """Initial load did not return every whitelisted symbol."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            "Missing required symbols",
            details=", ".join(missing),
        )
        self.missing = list(missing)


def failure_from_status(status: int, details: str | None = None) -> Failure:
    """Map an HTTP error status to the matching failure type."""
    if status in (408, 504):
        return TimeoutFailure("Request timeout", details=details, status_code=status)
    if status == 429:
        return ApiFailure("Rate limit exceeded", details=details, status_code=status)
    if status >= 500:
        return ApiFailure("Server error", details=details, status_code=status)
    return ApiFailure("HTTP error", details=details, status_code=status)
