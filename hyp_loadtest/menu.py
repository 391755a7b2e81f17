"""
Menu & Setup Data
=================
Run-scoped, read-only data fetched once before actors start: the restaurant
menu snapshot, restaurant info (location, menu sharing code) and the pool of
order ids that already have a fulfilled delivery record for tracking traffic.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple

from hyp_loadtest.client import ApiClient
from hyp_loadtest.decoding import (
    Decoded,
    DecodeError,
    decode_records,
    decode_delivery_status,
    decode_shape,
    first_record,
)

logger = logging.getLogger(__name__)

TRACKABLE_ORDER_STATUSES = ("DELIVERED", "OUT_FOR_PICKUP", "OUT_FOR_DELIVERY")
FULFILLED_DELIVERY_STATUSES = ("fulfilled", "completed")


@dataclass(frozen=True)
class MenuTax:
    id: str
    name: str
    rate: float
    type: str = "1"


@dataclass(frozen=True)
class MenuItem:
    id: str
    name: str
    price: float
    description: str = ""
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    taxes: Tuple[MenuTax, ...] = ()


@dataclass(frozen=True)
class MenuCategory:
    id: Optional[str]
    name: Optional[str]
    item_count: int = 0


@dataclass(frozen=True)
class MenuSnapshot:
    """Priced items and the unique taxes applied to them."""
    items: Tuple[MenuItem, ...]
    categories: Tuple[MenuCategory, ...] = ()
    taxes: Tuple[MenuTax, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.items


# =============================================================================
# STATIC SAMPLE CATALOGUE
# =============================================================================

TAX_IDS = {"CGST": "271757", "SGST": "271758"}

_SAMPLE_TAXES = (
    MenuTax(TAX_IDS["CGST"], "CGST", 2.5),
    MenuTax(TAX_IDS["SGST"], "SGST", 2.5),
)

STATIC_MENU = MenuSnapshot(
    items=(
        MenuItem(
            "10523187", "Double Chicken Burger Combo", 569.50,
            "Chicken fillet in a bun with coleslaw, lettuce, pickles and our spicy cocktail sauce.",
            taxes=_SAMPLE_TAXES,
        ),
        MenuItem("10523188", "Vanilla Icecream", 19.0, "Vanilla Icecream", taxes=_SAMPLE_TAXES),
        MenuItem(
            "1269809087", "Vegetable Green Thai Curry With Jasmine Rice", 250.0,
            "Thai curry with jasmine rice", taxes=_SAMPLE_TAXES,
        ),
        MenuItem("1269869732", "Paneer Inferno", 180.0, "Spicy paneer dish", taxes=_SAMPLE_TAXES),
    ),
    taxes=_SAMPLE_TAXES,
)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_menu(categories: List[Dict[str, Any]]) -> MenuSnapshot:
    """Flatten ``/menu/category`` output; items without a positive price are skipped."""
    items: List[MenuItem] = []
    taxes: Dict[str, MenuTax] = {}

    for category in categories:
        if not isinstance(category, dict):
            continue
        category_items = category.get("items")
        if not isinstance(category_items, list):
            continue

        for raw in category_items:
            if not isinstance(raw, dict):
                continue
            price = _to_float(raw.get("price"))
            if price <= 0:
                continue

            item_taxes = []
            for raw_tax in raw.get("taxes") or []:
                if not isinstance(raw_tax, dict):
                    continue
                tax = MenuTax(
                    id=str(raw_tax.get("id") or raw_tax.get("_id")),
                    name=raw_tax.get("taxName") or raw_tax.get("name") or "",
                    rate=_to_float(raw_tax.get("tax") or raw_tax.get("rate") or 0),
                    type=str(raw_tax.get("taxType") or raw_tax.get("type") or "1"),
                )
                item_taxes.append(tax)
                taxes.setdefault(tax.id, tax)

            items.append(MenuItem(
                id=str(raw.get("id") or raw.get("_id")),
                name=raw.get("itemName") or raw.get("name") or "",
                price=price,
                description=raw.get("description") or "",
                category_id=category.get("id") or category.get("_id"),
                category_name=category.get("name"),
                taxes=tuple(item_taxes),
            ))

    return MenuSnapshot(
        items=tuple(items),
        categories=tuple(
            MenuCategory(
                id=c.get("id") or c.get("_id"),
                name=c.get("name"),
                item_count=len(c.get("items") or []),
            )
            for c in categories if isinstance(c, dict)
        ),
        taxes=tuple(taxes.values()),
    )


async def fetch_menu(client: ApiClient, restaurant_id: str) -> Optional[MenuSnapshot]:
    """Fetch the menu snapshot; ``None`` means callers use :data:`STATIC_MENU`."""
    res = await client.get(f"/menu/category?restaurantId={restaurant_id}")
    result = decode_records(res)
    if isinstance(result, DecodeError):
        logger.warning("Failed to fetch menu data: %s", result.reason)
        return None

    snapshot = parse_menu(result.value)
    logger.info("Loaded %d items from %d categories, %d unique taxes",
                len(snapshot.items), len(snapshot.categories), len(snapshot.taxes))
    return snapshot


@dataclass(frozen=True)
class RestaurantInfo:
    id: Optional[str] = None
    name: Optional[str] = None
    location: Optional[Dict[str, float]] = None
    menu_sharing_code: Optional[str] = None


def _restaurant_location(restaurant: Dict[str, Any]) -> Optional[Dict[str, float]]:
    if isinstance(restaurant.get("location"), dict):
        return restaurant["location"]
    address = restaurant.get("address")
    if isinstance(address, dict) and isinstance(address.get("location"), dict):
        return address["location"]
    if restaurant.get("latitude") is not None and restaurant.get("longitude") is not None:
        return {"latitude": restaurant["latitude"], "longitude": restaurant["longitude"]}
    return None


async def fetch_restaurant_info(client: ApiClient, restaurant_id: str) -> RestaurantInfo:
    res = await client.get(f"/restaurant/{restaurant_id}")
    shape = decode_shape(res)
    restaurant = None if isinstance(shape, DecodeError) else first_record(shape)
    if restaurant is None:
        logger.warning("Failed to fetch restaurant %s (HTTP %s)", restaurant_id, res.status)
        return RestaurantInfo()

    code = restaurant.get("menuSharingCode")
    return RestaurantInfo(
        id=restaurant.get("id") or restaurant.get("_id"),
        name=restaurant.get("name") or restaurant.get("restaurantName"),
        location=_restaurant_location(restaurant),
        menu_sharing_code=str(code) if code is not None else None,
    )


async def fetch_trackable_orders(
    client: ApiClient,
    statuses: Tuple[str, ...] = TRACKABLE_ORDER_STATUSES,
    scan_limit: int = 150,
    keep: int = 100,
) -> List[str]:
    """
    Collect order ids whose delivery record is fulfilled or completed.

    Lists orders per status, then checks the delivery record of at most
    ``scan_limit`` of them, stopping once ``keep`` ids are found.
    """
    orders: List[Dict[str, Any]] = []
    for status in statuses:
        result = decode_records(await client.get(f"/order?status={status}"))
        if isinstance(result, Decoded):
            logger.info("%s: %d orders", status, len(result.value))
            orders.extend(result.value)
        else:
            logger.warning("Could not list %s orders: %s", status, result.reason)

    order_ids: List[str] = []
    for order in orders[:scan_limit]:
        order_id = order.get("id") or order.get("_id")
        if not order_id:
            continue

        status = decode_delivery_status(await client.get(f"/delivery/status/{order_id}"))
        if isinstance(status, Decoded) and str(status.value).lower() in FULFILLED_DELIVERY_STATUSES:
            order_ids.append(str(order_id))

        if len(order_ids) >= keep:
            break

    return order_ids


async def fetch_recent_order_ids(client: ApiClient, limit: int = 100) -> List[str]:
    """First ``limit`` ids from ``GET /order``, used when delivery state doesn't matter."""
    result = decode_records(await client.get("/order"))
    if isinstance(result, DecodeError):
        return []
    return [str(o["id"]) for o in result.value[:limit] if o.get("id")]
