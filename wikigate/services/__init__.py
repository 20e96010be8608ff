"""
Service layer infrastructure - resilience patterns for upstream API calls.

Provides:
- TTLCache: Size-bounded cache with TTL expiry and LRU eviction
- CircuitBreaker: Prevents cascading failures, one per mirror
- RetryExecutor: Retry with exponential backoff
- EndpointManager: Mirror failover combining breakers and retries
- RequestDeduplicator: Prevents duplicate concurrent requests
"""

from wikigate.services.errors import (
    ErrorKind,
    ServiceError,
    ValidationError,
    UpstreamHTTPError,
    NetworkError,
    RequestTimeoutError,
    DecodeError,
    CircuitOpenError,
    AllEndpointsFailedError,
)
from wikigate.services.cache import TTLCache, CacheEntry, CacheStats
from wikigate.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from wikigate.services.retry import RetryExecutor, RetryPolicy
from wikigate.services.endpoints import EndpointManager
from wikigate.services.deduplicator import RequestDeduplicator

__all__ = [
    # Errors
    "ErrorKind",
    "ServiceError",
    "ValidationError",
    "UpstreamHTTPError",
    "NetworkError",
    "RequestTimeoutError",
    "DecodeError",
    "CircuitOpenError",
    "AllEndpointsFailedError",
    # Cache
    "TTLCache",
    "CacheEntry",
    "CacheStats",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    # Retry
    "RetryExecutor",
    "RetryPolicy",
    # Endpoints
    "EndpointManager",
    # Deduplicator
    "RequestDeduplicator",
]
