"""
Mock Service Plumbing
=====================
Shared pieces for the aiohttp mock services: per-app request counter,
artificial response delay, ``/health`` and a catch-all that answers 200 for
any route a mock does not implement.
"""

import asyncio
import functools
import os
import time
from dataclasses import dataclass
from typing import Optional, Dict, Any, Callable, Awaitable

from aiohttp import web

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@dataclass
class MockStats:
    service: str
    delay_ms: float
    requests: int = 0
    started_at: float = 0.0

    @property
    def uptime(self) -> float:
        return time.time() - self.started_at


STATS = web.AppKey("stats", MockStats)


def response_delay(default_ms: float) -> float:
    """``RESPONSE_DELAY_MS`` from the environment, else the service default."""
    raw = os.environ.get("RESPONSE_DELAY_MS")
    try:
        return float(raw) if raw else default_ms
    except ValueError:
        return default_ms


def mocked(extra_delay_ms: float = 0, delay: bool = True) -> Callable[[Handler], Handler]:
    """Count the request and sleep for the configured delay before handling it."""
    def decorator(handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def wrapper(request: web.Request) -> web.StreamResponse:
            stats = request.app[STATS]
            stats.requests += 1
            if delay:
                total = stats.delay_ms + extra_delay_ms
                if total > 0:
                    await asyncio.sleep(total / 1000)
            return await handler(request)
        return wrapper
    return decorator


async def read_json(request: web.Request) -> Dict[str, Any]:
    """Request body as a dict; empty or invalid bodies become ``{}``."""
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def health(request: web.Request) -> web.Response:
    stats = request.app[STATS]
    return web.json_response({"status": "healthy", "service": stats.service, "requests": stats.requests})


@mocked(delay=False)
async def catch_all(request: web.Request) -> web.Response:
    return web.json_response({"success": True, "mock": True, "path": request.path})


def create_mock_app(
    service: str,
    routes: web.RouteTableDef,
    default_delay_ms: float,
    delay_ms: Optional[float] = None,
    fallback: Handler = catch_all,
) -> web.Application:
    """Build a mock app; the catch-all is registered after the service routes."""
    app = web.Application()
    app[STATS] = MockStats(
        service=service,
        delay_ms=response_delay(default_delay_ms) if delay_ms is None else delay_ms,
        started_at=time.time(),
    )
    app.router.add_get("/health", health)
    app.add_routes(routes)
    app.router.add_route("*", "/{tail:.*}", fallback)
    return app
