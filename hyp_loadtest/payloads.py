"""
Payload Generators
==================
Request bodies for the HYP API and its delivery-partner callback, built from
the menu snapshot (or the static sample catalogue) plus a few fixed values
agreed with the backend's load-test mode.

Generators never fail: missing inputs get timestamp-derived or constant
fallbacks (e.g. the default address id ``106335``).
"""

import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple

from faker import Faker

from hyp_loadtest.config import LOAD_TEST_OTP
from hyp_loadtest.menu import MenuSnapshot, MenuItem, STATIC_MENU

fake = Faker("en_IN")


# =============================================================================
# ENUMS AND CONSTANTS
# =============================================================================

class OrderStatus(Enum):
    """Order lifecycle as reported by ``GET /order/{id}``."""
    CREATED = "CREATED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAID = "PAID"
    ACCEPTED = "ACCEPTED"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY"
    SEARCHING_RIDER = "SEARCHING_RIDER"
    RIDER_ASSIGNED = "RIDER_ASSIGNED"
    OUT_FOR_PICKUP = "OUT_FOR_PICKUP"
    PICKED_UP = "PICKED_UP"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"


class FulfillmentStatus(Enum):
    """Delivery-partner side status carried in callbacks."""
    CREATED = "CREATED"
    OUT_FOR_PICKUP = "OUT_FOR_PICKUP"
    REACHED_PICKUP = "REACHED_PICKUP"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    REACHED_DELIVERY = "REACHED_DELIVERY"
    DELIVERED = "DELIVERED"


STANDARD_FULFILLMENT = (
    FulfillmentStatus.CREATED,
    FulfillmentStatus.OUT_FOR_PICKUP,
    FulfillmentStatus.PICKED_UP,
    FulfillmentStatus.OUT_FOR_DELIVERY,
    FulfillmentStatus.DELIVERED,
)

DETAILED_FULFILLMENT = (
    FulfillmentStatus.CREATED,
    FulfillmentStatus.OUT_FOR_PICKUP,
    FulfillmentStatus.REACHED_PICKUP,
    FulfillmentStatus.PICKED_UP,
    FulfillmentStatus.OUT_FOR_DELIVERY,
    FulfillmentStatus.REACHED_DELIVERY,
    FulfillmentStatus.DELIVERED,
)

# Minutes after the base time; strictly increasing along both sequences
STATUS_MINUTE_OFFSETS = {
    FulfillmentStatus.CREATED: 1,
    FulfillmentStatus.OUT_FOR_PICKUP: 3,
    FulfillmentStatus.REACHED_PICKUP: 8,
    FulfillmentStatus.PICKED_UP: 12,
    FulfillmentStatus.IN_TRANSIT: 14,
    FulfillmentStatus.OUT_FOR_DELIVERY: 15,
    FulfillmentStatus.REACHED_DELIVERY: 20,
    FulfillmentStatus.DELIVERED: 22,
}

STATUS_REMARKS = {
    FulfillmentStatus.OUT_FOR_PICKUP: "Start for Pickup",
    FulfillmentStatus.REACHED_PICKUP: "Reached Pickup",
    FulfillmentStatus.PICKED_UP: "admin quick scan",
    FulfillmentStatus.IN_TRANSIT: "In Transit",
    FulfillmentStatus.OUT_FOR_DELIVERY: "Start for Delivery",
    FulfillmentStatus.REACHED_DELIVERY: "Reached Delivery",
}

_PICKUP_DONE = {
    FulfillmentStatus.PICKED_UP,
    FulfillmentStatus.IN_TRANSIT,
    FulfillmentStatus.OUT_FOR_DELIVERY,
    FulfillmentStatus.REACHED_DELIVERY,
    FulfillmentStatus.DELIVERED,
}

# POS status codes understood by /pos/order/callback
POS_STATUS_CODES = {
    OrderStatus.ACCEPTED.value: "3",
    OrderStatus.READY_FOR_DELIVERY.value: "5",
}

ORDER_TYPES = {"DELIVERY": "1", "PICKUP": "2", "DINE_IN": "3"}
PAYMENT_TYPES = ("CREDIT", "COD", "CARD", "UPI")

MOBILE_PREFIX = "9800000"
FALLBACK_ADDRESS_ID = "106335"
FALLBACK_LOCATION = {"latitude": 28.4595, "longitude": 77.0266}
DELIVERY_CHARGE = 53.1
PACKAGING_CHARGE = 20.0

RIDER = {"id": "306", "name": "Rider name", "mobile": "8887772221"}
RIDER_LOCATION = {"latitude": 28.442554, "longitude": 77.08023}

_GURUGRAM_LOCALITIES = (
    ("Sector 15", "122001"),
    ("DLF Phase 2", "122002"),
    ("Cyber City", "122018"),
    ("Sohna Road", "122018"),
)


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


# =============================================================================
# ACTORS
# =============================================================================

@dataclass(frozen=True)
class Actor:
    """Simulated end user."""
    index: int
    name: str
    mobile: str


def generate_actor_pool(count: int = 1000) -> Tuple[Actor, ...]:
    return tuple(
        Actor(index=i, name=f"LoadTest User {i}", mobile=f"{MOBILE_PREFIX}{i:03d}")
        for i in range(count)
    )


def actor_for_slot(pool: Tuple[Actor, ...], slot: int) -> Actor:
    """Round-robin assignment of actor slots to pool entries."""
    return pool[slot % len(pool)]


def random_actor(pool: Tuple[Actor, ...]) -> Actor:
    return random.choice(pool)


# =============================================================================
# LOGIN / ADDRESS
# =============================================================================

def build_login_request(name: Optional[str] = None, mobile: Optional[str] = None) -> Dict[str, str]:
    stamp = str(_epoch_ms())
    return {
        "name": name or f"LoadTest User {stamp}",
        "mobile": mobile or f"98{stamp[-8:]}",
    }


def build_otp_verify_request(mobile: str, restaurant_id: str, otp: int = LOAD_TEST_OTP) -> Dict[str, Any]:
    return {"mobile": mobile, "restaurantId": restaurant_id, "otp": otp}


def build_address_request(customer_id: Any, location: Optional[Dict[str, float]] = None) -> Dict[str, Any]:
    """New delivery address near the restaurant (or central Gurugram)."""
    locality, pincode = random.choice(_GURUGRAM_LOCALITIES)
    return {
        "customerId": customer_id,
        "addressOne": f"{fake.building_number()} {fake.street_name()}",
        "addressTwo": locality,
        "city": "Gurugram",
        "state": "Haryana",
        "country": "India",
        "pincode": pincode,
        "landmark": f"Near {fake.company()}",
        "location": location or dict(FALLBACK_LOCATION),
        "addressType": "HOME",
        "isDefault": True,
    }


# =============================================================================
# ORDER DRAFT
# =============================================================================

@dataclass
class OrderOptions:
    order_type: str = ORDER_TYPES["DELIVERY"]
    payment_type: str = "CREDIT"
    address_id: Optional[str] = None
    item_count: Optional[int] = None
    # Fixed quantity per line; random 1-2 when unset
    quantity: Optional[int] = None
    special_instructions: Optional[str] = None


@dataclass
class OrderDraft:
    """Priced order ready to POST; ``to_payload`` gives the wire shape."""
    restaurant_id: Any
    customer_id: Any
    order_type: str
    payment_type: str
    address_id: str
    order_items: List[Dict[str, Any]]
    order_tax: List[Dict[str, Any]]
    subtotal: float
    tax_amount: float
    delivery_charge: float
    packaging_charge: float
    grand_total: float
    special_instructions: str = "Load test order"
    order_time: datetime = field(default_factory=_now)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "restaurantId": self.restaurant_id,
            "customerId": self.customer_id,
            "orderType": self.order_type,
            "paymentType": self.payment_type,
            "description": "Order + Tax",
            "orderItems": self.order_items,
            "orderTax": self.order_tax,
            "deliveryDetails": {
                "addressId": self.address_id,
                "service": "wefast",
                "pickupNow": True,
                "networkId": 18,
            },
            "specialInstructions": self.special_instructions,
            "orderTime": _iso(self.order_time),
            "expectedDeliveryTime": _iso(self.order_time + timedelta(hours=1)),
            "totalAmount": self.grand_total,
            "discountAmount": 0.0,
            "taxAmount": self.tax_amount,
            "deliveryCharge": self.delivery_charge,
            "dcTaxAmount": 0,
            "packagingCharge": self.packaging_charge,
            "pcTaxAmount": 0.0,
            "serviceCharge": 0.0,
            "scTaxAmount": 0.0,
            "grandTotalAmount": self.grand_total,
        }


def pick_items(menu: MenuSnapshot, count: int) -> List[MenuItem]:
    """Pick up to ``count`` distinct items."""
    return random.sample(list(menu.items), min(count, len(menu.items)))


def build_order_draft(
    restaurant_id: Any,
    customer_id: Any,
    menu: Optional[MenuSnapshot] = None,
    options: Optional[OrderOptions] = None,
) -> Optional[OrderDraft]:
    """
    Build a priced order from the menu snapshot, or the static catalogue
    when no snapshot is available.

    Line tax amounts are rounded for display only; subtotal and tax totals
    accumulate unrounded and are rounded once when summed, then the grand
    total is rounded once more. Returns ``None`` if there is nothing to order.
    """
    options = options or OrderOptions()
    catalogue = menu if menu is not None and not menu.is_empty else STATIC_MENU

    item_count = options.item_count or random.randint(1, 2)
    selected = pick_items(catalogue, item_count)
    if not selected:
        return None

    order_items = []
    raw_subtotal = 0.0
    tax_totals: Dict[str, Dict[str, Any]] = {}

    for item in selected:
        quantity = options.quantity or random.randint(1, 2)
        final_price = item.price * quantity
        raw_subtotal += final_price

        item_tax_lines = []
        for tax in item.taxes:
            amount = final_price * tax.rate / 100
            item_tax_lines.append({"id": tax.id, "name": tax.name, "amount": round(amount, 2)})
            totals = tax_totals.setdefault(tax.id, {"tax": tax, "total": 0.0})
            totals["total"] += amount

        order_items.append({
            "id": item.id,
            "name": item.name,
            "description": item.description,
            "itemDiscount": 0,
            "finalPrice": final_price,
            "quantity": quantity,
            "price": item.price,
            "orderItemTax": item_tax_lines,
        })

    order_tax = [
        {
            "id": entry["tax"].id,
            "title": entry["tax"].name,
            "type": entry["tax"].type,
            "price": entry["tax"].rate,
            "tax": round(entry["total"], 2),
            "restaurantLiableAmt": round(entry["total"], 2),
        }
        for entry in tax_totals.values()
    ]

    subtotal = round(raw_subtotal, 2)
    tax_amount = round(sum(entry["total"] for entry in tax_totals.values()), 2)
    delivery_charge = 0.0 if options.order_type == ORDER_TYPES["PICKUP"] else DELIVERY_CHARGE
    packaging_charge = PACKAGING_CHARGE

    return OrderDraft(
        restaurant_id=restaurant_id,
        customer_id=customer_id,
        order_type=options.order_type,
        payment_type=options.payment_type,
        address_id=options.address_id or FALLBACK_ADDRESS_ID,
        order_items=order_items,
        order_tax=order_tax,
        subtotal=subtotal,
        tax_amount=tax_amount,
        delivery_charge=delivery_charge,
        packaging_charge=packaging_charge,
        grand_total=round(subtotal + tax_amount + delivery_charge + packaging_charge, 2),
        special_instructions=options.special_instructions or "Load test order",
    )


# =============================================================================
# PAYMENT / POS
# =============================================================================

def build_payment_verify_request(payment_order_id: Any) -> Dict[str, Any]:
    """Gateway verification body; the backend accepts the mock signature in load mode."""
    return {
        "razorpay_payment_id": f"pay_{_epoch_ms()}",
        "razorpay_signature": "mock_signature_for_load_test",
        "razorpayOrderId": payment_order_id,
    }


def build_status_update(menu_sharing_code: Optional[str], order_id: Any, status: str) -> Dict[str, Any]:
    """POS callback; unknown status names are sent through unchanged."""
    return {
        "restID": menu_sharing_code,
        "orderID": str(order_id),
        "status": POS_STATUS_CODES.get(status, status),
        "minimum_prep_time": 15,
        "minimum_delivery_time": "",
    }


# =============================================================================
# DELIVERY CALLBACKS
# =============================================================================

def build_delivery_callback(
    order_id: Any,
    delivery_order_id: str,
    channel_order_id: str,
    status: FulfillmentStatus,
    prior_logs: Optional[List[Dict[str, Any]]] = None,
    base_time: Optional[datetime] = None,
    minute_offset: Optional[int] = None,
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Delivery-partner webhook for one fulfillment status.

    Returns ``(payload, logs)``: the payload carries the whole history,
    ``prior_logs`` plus one new entry. The caller keeps ``logs`` only if
    the callback was accepted.
    """
    base = base_time or _now()
    offset = STATUS_MINUTE_OFFSETS[status] if minute_offset is None else minute_offset
    timestamp = _iso(base + timedelta(minutes=offset))
    channel = {"name": "captive", "id": "-2", "order_id": str(channel_order_id)}
    initial = status == FulfillmentStatus.CREATED

    entry: Dict[str, Any] = {
        "timestamp": timestamp,
        "status": status.value,
        "channel": channel,
        "attemptType": "FORWARD",
    }
    if not initial:
        entry["location"] = dict(RIDER_LOCATION)
        entry["rider"] = dict(RIDER)
        entry["remark"] = STATUS_REMARKS.get(status)

    logs = list(prior_logs or []) + [entry]

    pickup: Dict[str, Any] = {"eta": _iso(base + timedelta(minutes=12)), "proof": []}
    if status in _PICKUP_DONE:
        pickup["location"] = dict(RIDER_LOCATION)
        pickup["timestamp"] = timestamp

    drop: Dict[str, Any] = {"eta": _iso(base + timedelta(minutes=22)), "proof": []}
    if status == FulfillmentStatus.DELIVERED:
        drop["location"] = dict(RIDER_LOCATION)
        drop["timestamp"] = timestamp

    fulfillment: Dict[str, Any] = {
        "channel": channel,
        "logs": logs,
        "status": status.value,
        "pickup": pickup,
        "drop": drop,
        "mtg": {
            "trip_id": 529719,
            "group_id": 204359,
            "rider_id": 306,
            "bundle_id": 142707,
            "sequence_number": 1,
        },
        "track_code": "rk3vx7",
        "delivery_charge": 189,
    }
    if not initial:
        fulfillment["rider"] = dict(RIDER)

    payload = {
        "id": str(delivery_order_id),
        "dd_channel": {
            "name": "Hyperapps Testing",
            "order_id": str(order_id),
            "user": {"id": 853, "type": 4},
            "source": {"id": 1},
        },
        "reference_id": str(order_id),
        "bill_amount": 637.9,
        "cod_amount": 0,
        "created_at": _iso(base + timedelta(minutes=1)),
        "customer_detail": {"name": "John Doe", "mobile": "1234567890"},
        "sender_detail": {"name": "Hyperapps Demo", "mobile": "1234567890"},
        "poc_detail": {"name": "Hyperapps", "mobile": "8754556606"},
        "status": "completed" if status == FulfillmentStatus.DELIVERED else "fulfilled",
        "updated_at": timestamp,
        "notes": [],
        "pickup_drop_distance": 0,
        "fulfillment": fulfillment,
        "owner": {"id": 815, "type": 4, "name": "Test Pidge R"},
        "parent_id": None,
    }
    return payload, logs


def random_channel_order_id() -> str:
    return str(random.randint(100000, 999999))


@dataclass
class DeliveryState:
    """Delivery progress for one order; ``logs`` only grows on accepted callbacks."""
    order_id: Any
    delivery_order_id: str
    channel_order_id: str
    base_time: datetime = field(default_factory=_now)
    fulfillment_status: Optional[FulfillmentStatus] = None
    logs: List[Dict[str, Any]] = field(default_factory=list)

    def callback_for(self, status: FulfillmentStatus) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        return build_delivery_callback(
            self.order_id,
            self.delivery_order_id,
            self.channel_order_id,
            status,
            self.logs,
            self.base_time,
        )

    def accept(self, status: FulfillmentStatus, logs: List[Dict[str, Any]]):
        self.fulfillment_status = status
        self.logs = logs
