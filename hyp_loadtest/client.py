"""
HTTP Client Adapter
===================
Thin wrapper over ``aiohttp.ClientSession`` for the backend under test.

Every call returns an :class:`ApiResponse`; timeouts and connection errors
come back as ``status=0`` with an error string instead of raising, so a
phase can treat them like any other non-200 response. Each exchange is
recorded into the run's metrics under a normalised endpoint name
(``post_/payment/:id``).
"""

import asyncio
import json
import re
import time
from dataclasses import dataclass
from typing import Optional, Dict, Any

import aiohttp

from hyp_loadtest.metrics import MetricsRegistry

_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|\?|$)")
_UUID = re.compile(r"/[0-9a-fA-F-]{24,36}(?=/|\?|$)")
_QUERY = re.compile(r"\?.*$")


def normalize_endpoint(path: str) -> str:
    """Collapse ids and query strings so metric names stay bounded."""
    path = _NUMERIC_SEGMENT.sub("/:id", path)
    path = _UUID.sub("/:uuid", path)
    return _QUERY.sub("", path)


def endpoint_name(method: str, path: str) -> str:
    return f"{method.lower()}_{normalize_endpoint(path)}"


@dataclass
class ApiResponse:
    """Result of one HTTP call."""
    status: int
    latency_ms: float
    name: str = ""
    body: Any = None
    text: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == 200

    @property
    def is_json(self) -> bool:
        return self.body is not None


class ApiClient:
    """
    Issues requests against ``base_url`` with fixed headers and timeout.

    Use as an async context manager; one session serves every actor of a run.
    """

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        metrics: Optional[MetricsRegistry] = None,
        connection_limit: int = 100,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {"Content-Type": "application/json", "Accept": "application/json"}
        self.timeout = aiohttp.ClientTimeout(total=timeout, connect=10)
        self.verify_ssl = verify_ssl
        self.metrics = metrics
        self.connection_limit = connection_limit
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "ApiClient":
        connector = aiohttp.TCPConnector(
            limit=self.connection_limit,
            limit_per_host=self.connection_limit,
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        self._session = aiohttp.ClientSession(timeout=self.timeout, connector=connector)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def request(self, method: str, path: str, payload: Optional[Any] = None) -> ApiResponse:
        if self._session is None:
            raise RuntimeError("ApiClient used outside of 'async with'")

        method = method.upper()
        name = endpoint_name(method, path)
        url = f"{self.base_url}{path}"
        start = time.perf_counter()

        try:
            async with self._session.request(
                method,
                url,
                headers=self.headers,
                json=payload if method in ["POST", "PUT", "PATCH"] else None,
                ssl=self.verify_ssl,
            ) as response:
                text = await response.text()
                latency = (time.perf_counter() - start) * 1000

                body = None
                if text:
                    try:
                        body = json.loads(text)
                    except json.JSONDecodeError:
                        pass

                result = ApiResponse(
                    status=response.status,
                    latency_ms=latency,
                    name=name,
                    body=body,
                    text=text,
                )

        except asyncio.TimeoutError:
            result = ApiResponse(0, (time.perf_counter() - start) * 1000, name, error="Timeout")
        except aiohttp.ClientConnectorError as e:
            result = ApiResponse(
                0, (time.perf_counter() - start) * 1000, name,
                error=f"ConnectionError: {type(e).__name__}",
            )
        except aiohttp.ClientError as e:
            result = ApiResponse(0, (time.perf_counter() - start) * 1000, name, error=type(e).__name__)

        if self.metrics is not None:
            self.metrics.record_http(result.name, result.status, result.latency_ms, result.error)
        return result

    async def get(self, path: str) -> ApiResponse:
        return await self.request("GET", path)

    async def post(self, path: str, payload: Optional[Any] = None) -> ApiResponse:
        return await self.request("POST", path, payload if payload is not None else {})

    async def patch(self, path: str, payload: Optional[Any] = None) -> ApiResponse:
        return await self.request("PATCH", path, payload if payload is not None else {})

    async def delete(self, path: str) -> ApiResponse:
        return await self.request("DELETE", path)
