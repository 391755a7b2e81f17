"""Payment gateway (Razorpay) API mock."""

import secrets
import time
from typing import Optional

from aiohttp import web

from hyp_loadtest.mocks.base import create_mock_app, mocked, read_json

SERVICE = "mock-razorpay"
DEFAULT_PORT = 8082
DEFAULT_DELAY_MS = 100

DEFAULT_AMOUNT = 50000

routes = web.RouteTableDef()


def _epoch() -> int:
    return int(time.time())


def _id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(8)}"


@routes.post("/v1/orders")
@mocked()
async def create_order(request: web.Request) -> web.Response:
    body = await read_json(request)
    amount = body.get("amount") or DEFAULT_AMOUNT
    return web.json_response({
        "id": _id("order"),
        "entity": "order",
        "amount": amount,
        "amount_paid": 0,
        "amount_due": amount,
        "currency": body.get("currency") or "INR",
        "receipt": body.get("receipt") or f"receipt_{int(time.time() * 1000)}",
        "status": "created",
        "attempts": 0,
        "created_at": _epoch(),
    })


@routes.get("/v1/orders/{order_id}")
@mocked()
async def fetch_order(request: web.Request) -> web.Response:
    return web.json_response({
        "id": request.match_info["order_id"],
        "entity": "order",
        "amount": DEFAULT_AMOUNT,
        "amount_paid": DEFAULT_AMOUNT,
        "amount_due": 0,
        "currency": "INR",
        "status": "paid",
        "attempts": 1,
        "created_at": _epoch(),
    })


@routes.post("/v1/payments/verify")
@mocked()
async def verify(request: web.Request) -> web.Response:
    # Any signature passes
    return web.json_response({"valid": True, "verified": True})


@routes.post("/v1/payments/{payment_id}/capture")
@mocked()
async def capture(request: web.Request) -> web.Response:
    body = await read_json(request)
    return web.json_response({
        "id": request.match_info["payment_id"],
        "entity": "payment",
        "amount": body.get("amount") or DEFAULT_AMOUNT,
        "currency": body.get("currency") or "INR",
        "status": "captured",
        "order_id": _id("order"),
        "method": "upi",
        "captured": True,
        "created_at": _epoch(),
    })


@routes.get("/v1/payments/{payment_id}")
@mocked()
async def fetch_payment(request: web.Request) -> web.Response:
    return web.json_response({
        "id": request.match_info["payment_id"],
        "entity": "payment",
        "amount": DEFAULT_AMOUNT,
        "currency": "INR",
        "status": "captured",
        "method": "upi",
        "captured": True,
        "description": "Test payment",
        "created_at": _epoch(),
    })


@routes.post("/v1/payments/{payment_id}/refund")
@mocked()
async def refund(request: web.Request) -> web.Response:
    body = await read_json(request)
    return web.json_response({
        "id": _id("rfnd"),
        "entity": "refund",
        "amount": body.get("amount") or DEFAULT_AMOUNT,
        "currency": "INR",
        "payment_id": request.match_info["payment_id"],
        "status": "processed",
        "created_at": _epoch(),
    })


@routes.get("/v1/settlements")
@mocked()
async def settlements(request: web.Request) -> web.Response:
    return web.json_response({
        "entity": "collection",
        "count": 1,
        "items": [{
            "id": _id("setl"),
            "entity": "settlement",
            "amount": 100000,
            "status": "processed",
            "fees": 2000,
            "tax": 360,
            "utr": f"UTR{int(time.time() * 1000)}",
            "created_at": _epoch(),
        }],
    })


def create_app(delay_ms: Optional[float] = None) -> web.Application:
    return create_mock_app(SERVICE, routes, DEFAULT_DELAY_MS, delay_ms)
