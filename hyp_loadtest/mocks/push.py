"""Push notification (OneSignal) API mock."""

import time
import uuid
from typing import Optional

from aiohttp import web

from hyp_loadtest.mocks.base import create_mock_app, mocked, read_json

SERVICE = "mock-onesignal"
DEFAULT_PORT = 8083
DEFAULT_DELAY_MS = 30

routes = web.RouteTableDef()


@routes.post("/notifications")
@mocked()
async def send_notification(request: web.Request) -> web.Response:
    body = await read_json(request)
    return web.json_response({
        "id": str(uuid.uuid4()),
        "recipients": len(body.get("include_player_ids") or []) or 1,
        "external_id": None,
    })


@routes.get("/notifications/{notification_id}")
@mocked()
async def get_notification(request: web.Request) -> web.Response:
    now = int(time.time())
    return web.json_response({
        "id": request.match_info["notification_id"],
        "successful": 1,
        "failed": 0,
        "converted": 0,
        "remaining": 0,
        "queued_at": now,
        "completed_at": now,
    })


@routes.patch("/apps/{app_id}/users/by/onesignal_id/{user_id}/identity")
@mocked()
async def set_identity(request: web.Request) -> web.Response:
    body = await read_json(request)
    identity = body.get("identity") if isinstance(body.get("identity"), dict) else {}
    return web.json_response({
        "identity": {
            "onesignal_id": request.match_info["user_id"],
            "external_id": identity.get("external_id") or f"ext_{int(time.time() * 1000)}",
        },
    })


@routes.delete("/apps/{app_id}/users/by/onesignal_id/{user_id}")
@mocked()
async def delete_user(request: web.Request) -> web.Response:
    return web.json_response({"success": True})


@routes.post("/apps/{app_id}/users")
@mocked()
async def create_user(request: web.Request) -> web.Response:
    body = await read_json(request)
    identity = body.get("identity") if isinstance(body.get("identity"), dict) else {}
    return web.json_response({
        "identity": {
            "onesignal_id": str(uuid.uuid4()),
            "external_id": identity.get("external_id"),
        },
        "subscriptions": [],
    })


def create_app(delay_ms: Optional[float] = None) -> web.Application:
    return create_mock_app(SERVICE, routes, DEFAULT_DELAY_MS, delay_ms)
