"""
HTTP connection pooling for the Azure DevOps and Slack clients.

Each service gets one named pool for the lifetime of a CLI run. The CLI
calls :func:`close_all_pools` before exiting.
"""

import asyncio
from typing import Any

import httpx
import structlog

from reviewporter.exceptions import ExternalServiceError

log = structlog.get_logger(__name__)


class HTTPConnectionPool:
    """Lazily created ``httpx.AsyncClient`` bound to one service."""

    def __init__(
        self,
        service: str,
        base_url: str,
        max_connections: int = 10,
        max_keepalive_connections: int = 5,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.service = service
        self.base_url = base_url
        self.max_connections = max_connections
        self.max_keepalive_connections = max_keepalive_connections
        self.timeout = timeout
        self.headers = headers or {}
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        async with self._lock:
            if self._client is None:
                limits = httpx.Limits(
                    max_keepalive_connections=self.max_keepalive_connections,
                    max_connections=self.max_connections,
                    keepalive_expiry=30.0,
                )
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    limits=limits,
                    timeout=self.timeout,
                    http2=True,
                    headers=self.headers,
                )
                log.debug("connection_pool_initialized", service=self.service, base_url=self.base_url)

    async def close(self) -> None:
        async with self._lock:
            if self._client:
                await self._client.aclose()
                self._client = None
                log.debug("connection_pool_closed", service=self.service)

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            await self.initialize()

        assert self._client is not None
        log.debug("http_request", service=self.service, method=method, path=path)
        return await self._client.request(method, path, **kwargs)

    async def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and decode its JSON body.

        Raises:
            ExternalServiceError: For non-2xx responses or a body that is
                not JSON
        """
        response = await self.request(method, path, **kwargs)
        if not response.is_success:
            raise ExternalServiceError(
                f"{method} {path} failed",
                service=self.service,
                status_code=response.status_code,
                response_text=response.text,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(
                f"{method} {path} returned invalid JSON",
                service=self.service,
                status_code=response.status_code,
                response_text=response.text,
            ) from e

    async def __aenter__(self) -> "HTTPConnectionPool":
        await self.initialize()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


class ConnectionPoolManager:
    """Manage the named pools of one process."""

    def __init__(self) -> None:
        self._pools: dict[str, HTTPConnectionPool] = {}
        self._lock = asyncio.Lock()

    async def get_pool(
        self,
        service: str,
        base_url: str,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> HTTPConnectionPool:
        """Get or create the pool for ``service``."""
        async with self._lock:
            if service not in self._pools:
                self._pools[service] = HTTPConnectionPool(
                    service=service,
                    base_url=base_url,
                    timeout=timeout,
                    headers=headers,
                )
                log.debug("connection_pool_created", service=service, base_url=base_url)
            return self._pools[service]

    async def close_all(self) -> None:
        async with self._lock:
            for pool in self._pools.values():
                await pool.close()
            self._pools.clear()


# Global pool manager
_pool_manager = ConnectionPoolManager()


async def get_pool(
    service: str,
    base_url: str,
    timeout: float = 30.0,
    headers: dict[str, str] | None = None,
) -> HTTPConnectionPool:
    """Get a named connection pool from the global manager."""
    return await _pool_manager.get_pool(service=service, base_url=base_url, timeout=timeout, headers=headers)


async def close_all_pools() -> None:
    await _pool_manager.close_all()
