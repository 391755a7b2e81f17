"""POS (PetPooja) API mock."""

import time
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web

from hyp_loadtest.mocks.base import create_mock_app, mocked, read_json

SERVICE = "mock-petpooja"
DEFAULT_PORT = 8084
DEFAULT_DELAY_MS = 50

routes = web.RouteTableDef()


@routes.post("/order/push")
@mocked()
async def push_order(request: web.Request) -> web.Response:
    body = await read_json(request)
    stamp = int(time.time() * 1000)
    return web.json_response({
        "success": True,
        "order_id": body.get("order_id") or f"PP-{stamp}",
        "pos_order_id": f"POS-{stamp}",
        "message": "Order received successfully",
    })


@routes.get("/menu")
@mocked()
async def menu(request: web.Request) -> web.Response:
    return web.json_response({
        "success": True,
        "menu": {
            "categories": [],
            "items": [],
            "last_updated": datetime.now(timezone.utc).isoformat(),
        },
    })


@routes.post("/order/status")
@mocked()
async def order_status(request: web.Request) -> web.Response:
    return web.json_response({"success": True, "status": "ACCEPTED"})


def create_app(delay_ms: Optional[float] = None) -> web.Application:
    return create_mock_app(SERVICE, routes, DEFAULT_DELAY_MS, delay_ms)
