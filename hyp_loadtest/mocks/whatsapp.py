"""WhatsApp (Meta Graph API) mock."""

import time
from typing import Optional

from aiohttp import web

from hyp_loadtest.mocks.base import create_mock_app, mocked, read_json

SERVICE = "mock-meta"
DEFAULT_PORT = 8085
DEFAULT_DELAY_MS = 30

routes = web.RouteTableDef()


@routes.post("/v20.0/{phone_number_id}/messages")
@mocked()
async def send_message(request: web.Request) -> web.Response:
    body = await read_json(request)
    return web.json_response({
        "messaging_product": "whatsapp",
        "contacts": [{"wa_id": body.get("to")}],
        "messages": [{"id": f"wamid.{int(time.time() * 1000)}"}],
    })


@routes.post("/v20.0/{phone_number_id}/messages/template")
@mocked()
async def send_template(request: web.Request) -> web.Response:
    return web.json_response({
        "messaging_product": "whatsapp",
        "messages": [{"id": f"wamid.template.{int(time.time() * 1000)}"}],
    })


def create_app(delay_ms: Optional[float] = None) -> web.Application:
    return create_mock_app(SERVICE, routes, DEFAULT_DELAY_MS, delay_ms)
