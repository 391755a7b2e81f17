"""Delivery partner (Pidge) API mock."""

import random
import string
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

from aiohttp import web

from hyp_loadtest.mocks.base import create_mock_app, mocked, read_json

SERVICE = "mock-pidge"
DEFAULT_PORT = 8081
DEFAULT_DELAY_MS = 50

routes = web.RouteTableDef()

_ALLOCATION = {
    "fulfilled": False,
    "message": "Allocation successful",
    "quote": None,
    "network_id": 0,
    "network_name": None,
}

# (network_id, network_name, service, pickup_now, price, base, gst, surge, pickup_min, drop_min)
_NETWORKS = [
    (2, "wefast", "wefast", True, 138.27, 112.18, 20.19, 0, 15, 30),
    (6, "porter", "porter", True, 131.87, 106.75, 19.22, 0, 8, None),
    (4, "shadowfax", "shadowfax", False, 155.77, 127.01, 22.86, 5.9, None, None),
    (371, "Rapido", "rapido", True, 164.02, 134, 24.12, 5.9, None, None),
    (60, "Flash by Shadowfax", "flash", True, 178.27, 172.37, 0, 0, None, None),
    (783, "MagicFleet", "magicpin", True, 177, 145, 26.1, 5.9, None, None),
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _delivery_id() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=8))
    return f"{int(time.time() * 1000)}{suffix}"


@routes.post("/v1.0/store/auth/token")
@mocked()
async def auth_token(request: web.Request) -> web.Response:
    return web.json_response({
        "success": True,
        "data": {"token": f"mock-pidge-token-{int(time.time() * 1000)}", "expires_in": 3600},
    })


@routes.post("/v1.0/store/channel/vendor/order")
@mocked()
async def create_order(request: web.Request) -> web.Response:
    """One delivery id per trip, keyed by the trip's ``source_order_id``."""
    body = await read_json(request)
    data: Dict[str, str] = {}
    for trip in body.get("trips") or []:
        if isinstance(trip, dict) and trip.get("source_order_id"):
            data[str(trip["source_order_id"])] = _delivery_id()
    if not data:
        data["default"] = _delivery_id()
    return web.json_response({"data": data})


@routes.post("/v1.0/store/channel/vendor/order/fulfill")
@mocked()
async def fulfill(request: web.Request) -> web.Response:
    return web.json_response({"data": dict(_ALLOCATION)})


@routes.post("/v1.0/store/channel/vendor/order/fulfill/smart")
@mocked(extra_delay_ms=50)
async def smart_fulfill(request: web.Request) -> web.Response:
    return web.json_response({"data": dict(_ALLOCATION)})


@routes.get("/v1.0/store/channel/vendor/order/{order_id}")
@mocked()
async def order_status(request: web.Request) -> web.Response:
    return web.json_response({
        "success": True,
        "data": {
            "order_id": request.match_info["order_id"],
            "status": random.choice(["CREATED", "PICKED_UP", "IN_TRANSIT", "DELIVERED"]),
            "rider_location": {
                "lat": 13.0827 + random.random() * 0.05,
                "lng": 80.2707 + random.random() * 0.05,
            },
            "updated_at": _now().isoformat(),
        },
    })


@routes.get("/v1.0/store/tracking/rider-location")
@mocked()
async def rider_location(request: web.Request) -> web.Response:
    return web.json_response({
        "success": True,
        "data": {
            "rider_id": request.query.get("rider_id", "RIDER-001"),
            "location": {
                "latitude": 13.0827 + random.random() * 0.05,
                "longitude": 80.2707 + random.random() * 0.05,
            },
        },
    })


@routes.post("/v1.0/store/channel/vendor/order/{order_id}/cancel")
@mocked()
async def cancel_order(request: web.Request) -> web.Response:
    return web.json_response({
        "success": True,
        "data": {
            "order_id": request.match_info["order_id"],
            "status": "CANCELLED",
            "cancelled_at": _now().isoformat(),
        },
    })


def _quote_item(network: tuple, distance: int, ref: str, pickup: str, drop: str) -> Dict[str, Any]:
    network_id, name, service, pickup_now, price, base, gst, surge, pickup_min, drop_min = network
    surge_breakup: Dict[str, Any] = {"total_surge_amount": surge}
    if surge:
        surge_breakup["slot_of_day_surge_amount"] = surge

    breakup: Dict[str, Any] = {
        "base_delivery_charge": base,
        "total_gst_amount": gst,
        "surge": surge,
        "additional_charges": [],
        "surge_breakup": surge_breakup,
    }
    if surge:
        breakup["items"] = [{
            "order_id": ref,
            "total": price,
            "amount": base,
            "tax": gst,
            "surge": surge,
            "surge_breakup": dict(surge_breakup),
        }]

    quote: Dict[str, Any] = {"price": price, "price_breakup": breakup, "is_rain": False}
    if not surge:
        quote["distance"] = distance
    if pickup_min is not None:
        quote["eta"] = {
            "pickup": pickup,
            "pickup_min": pickup_min,
            "drop": drop if drop_min is not None else None,
            "drop_min": drop_min,
        }
    else:
        quote["eta"] = {"pickup": None, "drop": None}

    return {
        "network_id": network_id,
        "network_name": name,
        "service": service,
        "pickup_now": pickup_now,
        "manifest": False,
        "quote": quote,
        "error": None,
    }


@routes.post("/v1.0/store/channel/vendor/quote")
@mocked()
async def quote(request: web.Request) -> web.Response:
    body = await read_json(request)
    drops: List[Any] = body.get("drop") or []
    ref: Optional[str] = drops[0].get("ref") if drops and isinstance(drops[0], dict) else None
    ref = ref or f"PGQ{int(time.time() * 1000)}"

    distance = random.randint(2000, 9999)
    pickup = (_now() + timedelta(minutes=15)).isoformat()
    drop = (_now() + timedelta(minutes=30)).isoformat()

    return web.json_response({
        "data": {
            "distance": [{"ref": ref, "distance": distance}],
            "items": [_quote_item(n, distance, ref, pickup, drop) for n in _NETWORKS],
        },
    })


@routes.post("/v1.0/store/quote")
@mocked()
async def legacy_quote(request: web.Request) -> web.Response:
    return web.json_response({
        "success": True,
        "data": {
            "quote_id": f"QUOTE-{uuid.uuid4().hex[:8]}",
            "delivery_fee": random.randint(30, 79),
            "distance_km": random.randint(1, 10),
            "estimated_time_minutes": random.randint(20, 49),
            "valid_until": (_now() + timedelta(minutes=10)).isoformat(),
        },
    })


@mocked(delay=False)
async def not_implemented(request: web.Request) -> web.Response:
    return web.json_response({
        "success": True,
        "message": "Mock endpoint - not specifically implemented",
        "path": request.path,
        "method": request.method,
    })


def create_app(delay_ms: Optional[float] = None) -> web.Application:
    return create_mock_app(SERVICE, routes, DEFAULT_DELAY_MS, delay_ms, fallback=not_implemented)
