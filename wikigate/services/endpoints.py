"""
EndpointManager - Resilient GET against an ordered list of mirrors.

Combines:
- One CircuitBreaker per mirror
- RetryExecutor around a whole pass over the mirrors
- A sticky preferred mirror (the last one that answered)
"""

from datetime import datetime
from functools import partial
from typing import Any, Callable

import httpx
from loguru import logger

from wikigate.services.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from wikigate.services.errors import (
    AllEndpointsFailedError,
    CircuitOpenError,
    DecodeError,
    NetworkError,
    RequestTimeoutError,
    ServiceError,
    UpstreamHTTPError,
    is_mirror_failure,
)
from wikigate.services.retry import RetryExecutor, RetryPolicy

DEFAULT_TIMEOUT = 10.0
DEFAULT_USER_AGENT = "wikigate/0.1 (resilient Wikipedia access layer; python-httpx)"


class EndpointManager:
    """
    Fetches JSON from the first healthy mirror.

    Usage:
        manager = EndpointManager(
            ["https://en.wikipedia.org", "https://en.m.wikipedia.org"],
        )
        data = await manager.fetch("/w/api.php", {"action": "query", ...})
    """

    def __init__(
        self,
        mirrors: list[str],
        http_client: httpx.AsyncClient | None = None,
        breaker_config: CircuitBreakerConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        retry_executor: RetryExecutor | None = None,
        clock: Callable[[], datetime] = datetime.now,
        name: str | None = None,
    ):
        if not mirrors:
            raise ValueError("EndpointManager needs at least one mirror")

        self._mirrors = tuple(m.rstrip("/") for m in mirrors)
        self._preferred_index = 0
        self._timeout = timeout
        self._user_agent = user_agent
        self.name = name or self._mirrors[0]

        self._circuit_breakers = CircuitBreakerRegistry(breaker_config, clock=clock)
        for mirror in self._mirrors:
            self._circuit_breakers.get(mirror)

        self._retry = retry_executor or RetryExecutor(retry_policy)

        # HTTP client (lazy initialization when not shared)
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def mirrors(self) -> tuple[str, ...]:
        return self._mirrors

    @property
    def preferred_index(self) -> int:
        return self._preferred_index

    @property
    def preferred_mirror(self) -> str:
        return self._mirrors[self._preferred_index]

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._http_client

    async def fetch(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET ``path`` from the mirrors and return the decoded JSON body.

        Raises:
            CircuitOpenError: If every mirror's circuit is open
            AllEndpointsFailedError: If every mirror failed and retries are spent
        """
        return await self._retry.execute(partial(self._fetch_pass, path, params))

    async def _fetch_pass(self, path: str, params: dict[str, Any] | None) -> Any:
        """Try each mirror once, starting at the preferred one."""
        failures: dict[str, ServiceError] = {}
        last_error: ServiceError | None = None
        count = len(self._mirrors)

        for offset in range(count):
            index = (self._preferred_index + offset) % count
            mirror = self._mirrors[index]
            breaker = self._circuit_breakers.get(mirror)

            try:
                data = await breaker.execute(
                    partial(self._execute_request, mirror, path, params),
                    is_failure=is_mirror_failure,
                )
            except CircuitOpenError as e:
                failures[mirror] = e
                logger.debug(f"Skipping {mirror}: circuit open")
                continue
            except ServiceError as e:
                failures[mirror] = e
                last_error = e
                logger.warning(f"Endpoint {mirror} failed: {e}")
                continue

            if index != self._preferred_index:
                logger.info(f"Preferred endpoint for '{self.name}' is now {mirror}")
                self._preferred_index = index
            return data

        if last_error is None:
            retry_after = min(
                e.reset_after_seconds
                for e in failures.values()
                if isinstance(e, CircuitOpenError)
            )
            raise CircuitOpenError(self.name, retry_after)

        raise AllEndpointsFailedError(self.name, failures, last_error)

    async def _execute_request(
        self,
        mirror: str,
        path: str,
        params: dict[str, Any] | None,
    ) -> Any:
        """Execute the actual HTTP request against one mirror."""
        client = self._get_http_client()

        try:
            response = await client.get(
                f"{mirror}{path}",
                params=params,
                headers={"User-Agent": self._user_agent},
                timeout=self._timeout,
            )
            response.raise_for_status()

        except httpx.TimeoutException as e:
            raise RequestTimeoutError(mirror, self._timeout) from e

        except httpx.HTTPStatusError as e:
            raise UpstreamHTTPError(
                mirror, e.response.status_code, e.response.text[:200]
            ) from e

        except httpx.RequestError as e:
            raise NetworkError(
                f"{type(e).__name__}: {e}", service_id=mirror
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(
                f"Invalid JSON from '{mirror}': {e}", service_id=mirror
            ) from e

    def get_endpoint_status(self) -> list[dict[str, Any]]:
        """Get per-mirror circuit status."""
        return [
            {
                "endpoint": mirror,
                "preferred": index == self._preferred_index,
                "status": self._circuit_breakers.get(mirror).get_status(),
            }
            for index, mirror in enumerate(self._mirrors)
        ]

    def get_open_circuits(self) -> list[str]:
        return self._circuit_breakers.get_open_circuits()

    def reset_circuits(self) -> None:
        self._circuit_breakers.reset_all()

    async def close(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._owns_client and self._http_client:
            await self._http_client.aclose()
            self._http_client = None
