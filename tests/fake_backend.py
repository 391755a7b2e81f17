"""
In-process stand-in for the HYP backend.

Keeps just enough order state for the lifecycle to progress the way the real
backend does in load-test mode, records every call, and lets a test force a
status/body for any route by its canonical path (``/order/{order_id}``).
"""

import itertools
from collections import defaultdict
from typing import Optional, List, Dict, Any, Tuple

from aiohttp import web

POS_CODES = {"3": "ACCEPTED", "5": "READY_FOR_DELIVERY"}

# Delivery callback status -> order status the backend moves to
CALLBACK_TO_ORDER = {
    "CREATED": "RIDER_ASSIGNED",
    "OUT_FOR_PICKUP": "OUT_FOR_PICKUP",
    "REACHED_PICKUP": "OUT_FOR_PICKUP",
    "PICKED_UP": "PICKED_UP",
    "IN_TRANSIT": "OUT_FOR_DELIVERY",
    "OUT_FOR_DELIVERY": "OUT_FOR_DELIVERY",
    "REACHED_DELIVERY": "OUT_FOR_DELIVERY",
    "DELIVERED": "DELIVERED",
}


def _tax(tax_id: str, name: str) -> Dict[str, Any]:
    return {"id": tax_id, "taxName": name, "tax": 2.5, "taxType": "1"}


MENU = [
    {
        "id": "cat-1",
        "name": "Mains",
        "items": [
            {"id": "item-100", "itemName": "Thali", "price": 100, "taxes": [_tax("t1", "CGST"), _tax("t2", "SGST")]},
            {"id": "item-free", "itemName": "Water", "price": 0, "taxes": []},
        ],
    },
    {
        "id": "cat-2",
        "name": "Sides",
        "items": [
            {"id": "item-50", "itemName": "Raita", "price": 50, "taxes": [_tax("t1", "CGST"), _tax("t2", "SGST")]},
        ],
    },
]


class FakeBackend:
    def __init__(self):
        self.calls: List[Tuple[str, str]] = []
        self.bodies: Dict[str, List[Any]] = defaultdict(list)
        self.overrides: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.deliveries: Dict[str, Dict[str, Any]] = {}
        self.addresses: List[Dict[str, Any]] = [
            {"id": "addr-1", "isDefault": False},
            {"id": "addr-2", "isDefault": True},
        ]
        # What GET /order/{id} reports once an order is DELIVERED
        self.delivered_label = "DELIVERED"
        # Create the delivery record on READY_FOR_DELIVERY (auto dispatch)
        self.auto_dispatch = True
        self._ids = itertools.count(9001)

    # -- test helpers ---------------------------------------------------------

    def override(self, method: str, route: str, status: int, body: Any = None):
        self.overrides[(method.upper(), route)] = (status, body)

    def count(self, method: str, prefix: str) -> int:
        return sum(1 for m, p in self.calls if m == method.upper() and p.startswith(prefix))

    def paths(self) -> List[str]:
        return [f"{m} {p}" for m, p in self.calls]

    def add_order(self, status: str, delivery_status: Optional[str] = None) -> str:
        order_id = str(next(self._ids))
        self.orders[order_id] = {"id": order_id, "status": status}
        if delivery_status:
            self.deliveries[order_id] = self._delivery_record(order_id, delivery_status)
        return order_id

    # -- state ----------------------------------------------------------------

    def _delivery_record(self, order_id: str, status: str = "fulfilled") -> Dict[str, Any]:
        return {
            "id": f"DLV{order_id}",
            "orderId": order_id,
            "status": status,
            "fulfillment": {"channel": {"name": "captive", "order_id": f"CH{order_id}"}},
        }

    def _order_view(self, order: Dict[str, Any]) -> Dict[str, Any]:
        view = dict(order)
        if view["status"] == "DELIVERED":
            view["status"] = self.delivered_label
        return view

    # -- handlers -------------------------------------------------------------

    async def login_otp(self, request):
        return web.json_response({"data": [], "message": "OTP sent"})

    async def verify_otp(self, request):
        body = await request.json()
        return web.json_response({"data": [{"id": f"cust-{body['mobile']}"}]})

    async def menu(self, request):
        return web.json_response({"data": MENU})

    async def restaurant(self, request):
        return web.json_response({"data": {
            "id": request.match_info["rid"],
            "name": "Test Kitchen",
            "menuSharingCode": "ms-1",
            "location": {"latitude": 28.45, "longitude": 77.02},
        }})

    async def list_addresses(self, request):
        return web.json_response({"data": self.addresses})

    async def create_address(self, request):
        address = {"id": f"addr-{next(self._ids)}", "isDefault": True}
        self.addresses.append(address)
        return web.json_response({"data": address})

    async def quote(self, request):
        return web.json_response({"data": [{"price": 53.1}]})

    async def create_order(self, request):
        order_id = str(next(self._ids))
        self.orders[order_id] = {"id": order_id, "status": "CREATED"}
        return web.json_response({"data": [{"id": order_id, "status": "CREATED"}]})

    async def list_orders(self, request):
        status = request.query.get("status")
        orders = [o for o in self.orders.values() if status is None or o["status"] == status]
        return web.json_response({"data": [self._order_view(o) for o in orders]})

    async def get_order(self, request):
        order = self.orders.get(request.match_info["order_id"])
        if order is None:
            return web.json_response({"message": "not found"}, status=404)
        return web.json_response({"data": [self._order_view(order)]})

    async def track_order(self, request):
        order = self.orders.get(request.match_info["order_id"])
        if order is None:
            return web.json_response({"message": "not found"}, status=404)
        return web.json_response({"data": {"status": self._order_view(order)["status"]}})

    async def create_payment(self, request):
        order_id = request.match_info["order_id"]
        self.orders[order_id]["status"] = "PAYMENT_PENDING"
        return web.json_response({"data": [{"paymentOrderId": f"order_pay{order_id}"}]})

    async def verify_payment(self, request):
        self.orders[request.match_info["order_id"]]["status"] = "PAID"
        return web.json_response({"data": [{"verified": True}]})

    async def pos_callback(self, request):
        body = await request.json()
        order = self.orders.get(body["orderID"])
        status = POS_CODES.get(body["status"], body["status"])
        if order is None:
            return web.json_response({"message": "unknown order"}, status=404)
        order["status"] = status
        if status == "READY_FOR_DELIVERY" and self.auto_dispatch:
            self.deliveries.setdefault(body["orderID"], self._delivery_record(body["orderID"]))
        return web.json_response({"success": "1"})

    async def fulfill(self, request):
        order_id = request.match_info["order_id"]
        self.deliveries.setdefault(order_id, self._delivery_record(order_id))
        self.orders[order_id]["status"] = "SEARCHING_RIDER"
        return web.json_response({"data": [{"fulfilled": True}]})

    async def delivery_status(self, request):
        record = self.deliveries.get(request.match_info["order_id"])
        if record is None:
            return web.json_response({"message": "no delivery"}, status=404)
        return web.json_response({"data": [record]})

    async def delivery_callback(self, request):
        body = await request.json()
        order = self.orders.get(body["reference_id"])
        if order is None:
            return web.json_response({"message": "unknown order"}, status=404)
        order["status"] = CALLBACK_TO_ORDER[body["fulfillment"]["status"]]
        return web.json_response({"success": True})

    async def rider_location(self, request):
        if request.match_info["order_id"] not in self.deliveries:
            return web.json_response({"message": "no rider"}, status=404)
        return web.json_response({"data": {"latitude": 28.44, "longitude": 77.08}})

    async def anything(self, request):
        return web.json_response({"data": []})

    # -- app ------------------------------------------------------------------

    def app(self) -> web.Application:
        @web.middleware
        async def record(request, handler):
            self.calls.append((request.method, request.path_qs))
            if request.can_read_body:
                self.bodies[request.path].append(await request.json())

            resource = request.match_info.route.resource
            canonical = resource.canonical if resource is not None else request.path
            forced = self.overrides.get((request.method, canonical))
            if forced is not None:
                status, body = forced
                if isinstance(body, str):
                    return web.Response(status=status, text=body)
                return web.json_response(body if body is not None else {}, status=status)
            return await handler(request)

        app = web.Application(middlewares=[record])
        r = app.router
        r.add_post("/login/otp", self.login_otp)
        r.add_post("/login/verify-otp", self.verify_otp)
        r.add_get("/menu/category", self.menu)
        r.add_get("/restaurant/{rid}", self.restaurant)
        r.add_get("/address", self.list_addresses)
        r.add_post("/address", self.create_address)
        r.add_get("/delivery/quote/{rid}", self.quote)
        r.add_post("/order", self.create_order)
        r.add_get("/order", self.list_orders)
        r.add_get("/order/track/{order_id}", self.track_order)
        r.add_get("/order/{order_id}", self.get_order)
        r.add_post("/payment/verify/{order_id}", self.verify_payment)
        r.add_post("/payment/{order_id}", self.create_payment)
        r.add_post("/pos/order/callback", self.pos_callback)
        r.add_post("/delivery/fulfill/{order_id}", self.fulfill)
        r.add_get("/delivery/status/{order_id}", self.delivery_status)
        r.add_post("/delivery/callback", self.delivery_callback)
        r.add_get("/delivery/rider-location/{order_id}", self.rider_location)
        r.add_route("*", "/{tail:.*}", self.anything)
        return app
