"""Error taxonomy and classification for cuesync.

Every failure that reaches a caller is expressed as a ``SyncError`` carrying
one of five kinds, a severity and a ``recoverable`` flag. Exceptions raised
inside the engine derive from ``CuesyncError``.
"""

from __future__ import annotations

import asyncio
from enum import Enum

import httpx
from pydantic import BaseModel, ConfigDict


class ErrorKind(str, Enum):
    """Delivery error categories."""

    API_ERROR = "API_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorSeverity(str, Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SyncError(BaseModel):
    """Classified, human-readable error attached to a failed delivery."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    recoverable: bool = True


class CuesyncError(Exception):
    """Base class for all cuesync exceptions."""


class ProviderError(CuesyncError):
    """Raised by provider clients when a completion request fails.

    Attributes:
        kind: Error category
        status_code: HTTP status code, if the failure came from a response
        unauthorized: True when the provider rejected the credentials
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.API_ERROR,
        status_code: int | None = None,
        unauthorized: bool = False,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.unauthorized = unauthorized


class MissingCredentialError(CuesyncError):
    """Raised when no API key is configured for a provider."""

    def __init__(self, platform: str, env_var: str | None = None) -> None:
        detail = f" (set {env_var})" if env_var else ""
        super().__init__(f"Missing API key for platform '{platform}'{detail}")
        self.platform = platform
        self.env_var = env_var


class StoreUnavailableError(CuesyncError):
    """Raised when the persistence store cannot be reached."""


class InvalidStatusTransition(CuesyncError):
    """Raised when a capsule sync status change violates the state machine."""


class UnknownPlatformError(CuesyncError):
    """Raised when a platform identifier is not in the registry."""


# Keyword fallback for exceptions that carry no structured information.
_MESSAGE_KINDS: tuple[tuple[str, ErrorKind], ...] = (
    ("rate limit", ErrorKind.RATE_LIMIT_ERROR),
    ("timeout", ErrorKind.TIMEOUT_ERROR),
    ("timed out", ErrorKind.TIMEOUT_ERROR),
    ("network", ErrorKind.NETWORK_ERROR),
    ("connection", ErrorKind.NETWORK_ERROR),
)


def _kind_from_message(message: str) -> ErrorKind:
    lowered = message.lower()
    for keyword, kind in _MESSAGE_KINDS:
        if keyword in lowered:
            return kind
    if "API" in message:
        return ErrorKind.API_ERROR
    return ErrorKind.UNKNOWN_ERROR


def classify_error(exc: BaseException) -> SyncError:
    """Map an exception to a ``SyncError``.

    Policy:
        - rate limit and timeout: medium severity, recoverable
        - unauthorized: high severity, not recoverable
        - missing API credential: critical, not recoverable
        - open circuit: network error with the severity of its last failure
        - everything else: medium severity, recoverable

    Args:
        exc: Exception raised during a delivery or analysis

    Returns:
        Classified error
    """
    # circuit_breaker imports this module.
    from cuesync.resilience.circuit_breaker import CircuitBreakerError

    message = str(exc) or exc.__class__.__name__

    if isinstance(exc, MissingCredentialError):
        return SyncError(
            kind=ErrorKind.API_ERROR,
            message=message,
            severity=ErrorSeverity.CRITICAL,
            recoverable=False,
        )

    if isinstance(exc, ProviderError):
        if exc.unauthorized:
            return SyncError(
                kind=exc.kind,
                message=message,
                severity=ErrorSeverity.HIGH,
                recoverable=False,
            )
        return SyncError(kind=exc.kind, message=message)

    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return SyncError(kind=ErrorKind.TIMEOUT_ERROR, message=f"Request timed out: {message}")

    if isinstance(exc, CircuitBreakerError):
        if exc.last_error is None:
            return SyncError(kind=ErrorKind.NETWORK_ERROR, message=message)
        cause = classify_error(exc.last_error)
        return SyncError(
            kind=ErrorKind.NETWORK_ERROR,
            message=message,
            severity=cause.severity,
            recoverable=cause.recoverable,
        )

    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return SyncError(kind=ErrorKind.NETWORK_ERROR, message=message)

    kind = _kind_from_message(message)
    lowered = message.lower()
    if "unauthorized" in lowered:
        return SyncError(kind=kind, message=message, severity=ErrorSeverity.HIGH, recoverable=False)
    if "api key" in lowered:
        return SyncError(
            kind=kind, message=message, severity=ErrorSeverity.CRITICAL, recoverable=False
        )
    return SyncError(kind=kind, message=message, recoverable=True)
