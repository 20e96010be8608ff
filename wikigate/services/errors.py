"""
Service layer exceptions.

Every error raised by the resilience layer carries an ``ErrorKind`` tag.
Retry decisions look at ``ServiceError.retryable`` instead of the class name.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories attached to service errors."""

    VALIDATION = "validation"
    HTTP = "http"
    NETWORK = "network"
    TIMEOUT = "timeout"
    DECODE = "decode"
    CIRCUIT_OPEN = "circuit_open"
    ALL_ENDPOINTS_FAILED = "all_endpoints_failed"


class ServiceError(Exception):
    """Base exception for service layer errors."""

    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return False


class ValidationError(ServiceError):
    """Caller supplied malformed input. Never retried."""

    kind = ErrorKind.VALIDATION


class UpstreamHTTPError(ServiceError):
    """Upstream answered with a non-2xx status."""

    kind = ErrorKind.HTTP

    def __init__(self, service_id: str, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        msg = f"HTTP {status_code} from '{service_id}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg, service_id=service_id)

    @property
    def retryable(self) -> bool:
        return 500 <= self.status_code < 600


class NetworkError(ServiceError):
    """Connection, DNS or transport failure."""

    kind = ErrorKind.NETWORK

    @property
    def retryable(self) -> bool:
        return True


class RequestTimeoutError(ServiceError):
    """Request timed out."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )

    @property
    def retryable(self) -> bool:
        return True


class DecodeError(ServiceError):
    """Upstream body was not JSON or did not have the expected shape."""

    kind = ErrorKind.DECODE


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            service_id=service_id,
        )


class AllEndpointsFailedError(ServiceError):
    """Every mirror failed during a fetch pass."""

    kind = ErrorKind.ALL_ENDPOINTS_FAILED

    def __init__(
        self,
        service_id: str,
        failures: dict[str, ServiceError],
        last_error: ServiceError,
    ):
        self.failures = failures
        self.last_error = last_error
        super().__init__(
            f"All {len(failures)} endpoints failed for '{service_id}', "
            f"last failure ({last_error.kind.value}): {last_error}",
            service_id=service_id,
        )

    @property
    def last_kind(self) -> ErrorKind:
        """Kind of the last concrete (non circuit-open) failure."""
        return self.last_error.kind

    @property
    def retryable(self) -> bool:
        return self.last_error.retryable

    @property
    def not_found(self) -> bool:
        """True when every mirror that answered said 404."""
        answered = [f for f in self.failures.values() if not isinstance(f, CircuitOpenError)]
        return bool(answered) and all(
            isinstance(f, UpstreamHTTPError) and f.status_code == 404 for f in answered
        )


def is_retryable_error(error: BaseException) -> bool:
    """Default retry predicate: only tagged service errors may be retried."""
    return isinstance(error, ServiceError) and error.retryable


def is_mirror_failure(error: BaseException) -> bool:
    """Breaker predicate: client errors (4xx) say nothing about mirror health."""
    if isinstance(error, UpstreamHTTPError):
        return error.status_code >= 500
    return True


def error_kind_of(error: BaseException) -> str:
    """Short error label for telemetry."""
    if isinstance(error, ServiceError):
        return error.kind.value
    return type(error).__name__
