"""
Traffic Journeys
================
Everything an actor can do in one iteration besides the full order
lifecycle: menu browsing, login bursts, tracking lookups, catch-all read
traffic and the smoke pass. Every journey has the same signature,
``(ctx, actor) -> bool``, so scenarios can mix them with weights.
"""

import logging
import random
import time
from typing import List, Optional

from hyp_loadtest.context import RunContext
from hyp_loadtest.decoding import Decoded, decode_customer_id
from hyp_loadtest.payloads import (
    Actor,
    FALLBACK_ADDRESS_ID,
    build_login_request,
    build_otp_verify_request,
)
from hyp_loadtest.workflow import OrderLifecycleWorkflow, ORDER_FLOW, ORDER_STRESS, Phase

logger = logging.getLogger(__name__)

TRACKABLE_OK = (200, 404)

OTHER_READ_PATHS = ["/restaurant", "/customer", "/offer", "/fee", "/order-type"]
STRESS_MIXED_PATHS = ["/restaurant", "/category", "/item", "/customer", "/actuator/health"]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _menu_path(ctx: RunContext) -> str:
    return f"/menu/category?restaurantId={ctx.restaurant_id}"


# =============================================================================
# MIXED LOAD
# =============================================================================

async def browse_menu(ctx: RunContext, actor: Actor) -> bool:
    """Menu, category list and addon groups; the trend is the mean API time."""
    api_time = 0.0
    success = True

    for path, pause in ((_menu_path(ctx), (200, 500)), ("/category", (100, 300)), ("/addon-group", None)):
        res = await ctx.client.get(path)
        api_time += res.latency_ms
        success = success and res.ok
        ctx.metrics.counter("menu_requests").add(1)
        if pause:
            await ctx.think(*pause)

    ctx.metrics.trend("menu_duration").add(api_time / 3)
    ctx.metrics.rate("menu_success_rate").add(success)
    ctx.metrics.rate("overall_success_rate").add(success)
    return success


async def order_flow(ctx: RunContext, actor: Actor) -> bool:
    """Login, order, payment create and verify."""
    result = await OrderLifecycleWorkflow(ctx, ORDER_FLOW).run(actor)
    ctx.metrics.rate("overall_success_rate").add(result.success)
    return result.success


async def track_orders(ctx: RunContext, actor: Actor) -> bool:
    start = time.perf_counter()
    success = await _tracking_lookup(ctx)
    ctx.metrics.trend("tracking_duration").add(_elapsed_ms(start))
    ctx.metrics.rate("overall_success_rate").add(success)
    return success


async def other_operations(ctx: RunContext, actor: Actor) -> bool:
    res = await ctx.client.get(random.choice(OTHER_READ_PATHS))
    ctx.metrics.rate("overall_success_rate").add(res.ok)
    return res.ok


# =============================================================================
# TRACKING
# =============================================================================

async def _tracking_lookup(ctx: RunContext) -> bool:
    """
    One tracking call for a random trackable order: 50% track, 30% delivery
    status, 20% rider location. 404 counts as success. Fails without a call
    when no trackable orders were found during setup.
    """
    if not ctx.trackable_order_ids:
        logger.warning("No trackable orders available for tracking flow")
        ctx.metrics.rate("tracking_success_rate").add(False)
        return False

    order_id = random.choice(ctx.trackable_order_ids)
    action = random.random()

    if action < 0.5:
        path, trend, check = f"/order/track/{order_id}", "order_track_duration", "Order track OK"
    elif action < 0.8:
        path, trend, check = f"/delivery/status/{order_id}", "delivery_status_duration", "Delivery status OK"
    else:
        path, trend, check = f"/delivery/rider-location/{order_id}", "rider_location_duration", "Rider location OK"

    res = await ctx.client.get(path)
    ctx.metrics.trend(trend).add(res.latency_ms)
    ctx.metrics.counter("tracking_requests").add(1)

    success = ctx.metrics.check(check, res.status in TRACKABLE_OK)
    ctx.metrics.rate("tracking_success_rate").add(success)
    return success


async def tracking_stress(ctx: RunContext, actor: Actor) -> bool:
    return await _tracking_lookup(ctx)


# =============================================================================
# LOGIN
# =============================================================================

async def login(ctx: RunContext, actor: Actor) -> Optional[str]:
    """OTP request plus verify; returns the customer id or ``None``."""
    flow_start = time.perf_counter()
    customer_id = None

    start = time.perf_counter()
    login_request = build_login_request(actor.name, actor.mobile)
    res = await ctx.client.post("/login/otp", login_request)
    ctx.metrics.trend("otp_request_duration").add(_elapsed_ms(start))

    if ctx.metrics.check("OTP request successful", res.ok):
        await ctx.think(200, 500)

        start = time.perf_counter()
        verify = build_otp_verify_request(actor.mobile, ctx.restaurant_id, ctx.config.otp)
        res = await ctx.client.post("/login/verify-otp", verify)
        ctx.metrics.trend("otp_verify_duration").add(_elapsed_ms(start))

        if ctx.metrics.check("OTP verify HTTP 200", res.ok):
            result = decode_customer_id(res)
            if isinstance(result, Decoded):
                customer_id = str(result.value)
            else:
                logger.warning("OTP verify for %s: %s", actor.mobile, result.reason)
        else:
            logger.warning("OTP verify failed for %s: HTTP %s", actor.mobile, res.status)
    else:
        logger.warning("OTP request failed for %s: HTTP %s", actor.mobile, res.status)

    success = customer_id is not None
    ctx.metrics.trend("total_login_duration").add(_elapsed_ms(flow_start))
    ctx.metrics.rate("login_success_rate").add(success)
    ctx.metrics.counter("logins_completed" if success else "logins_failed").add(1)
    return customer_id


async def login_stress(ctx: RunContext, actor: Actor) -> bool:
    return await login(ctx, actor) is not None


async def order_stress(ctx: RunContext, actor: Actor) -> bool:
    result = await OrderLifecycleWorkflow(ctx, ORDER_STRESS).run(actor)
    if result.aborted_at == Phase.LOGIN:
        # Login failures count against the order rate
        ctx.metrics.rate("order_success_rate").add(False)
    if not result.success:
        ctx.metrics.counter("orders_failed").add(1)
    return result.success


# =============================================================================
# MENU STRESS
# =============================================================================

async def _menu_fetch(ctx: RunContext, path: str, check: str, trend: Optional[str]) -> bool:
    res = await ctx.client.get(path)
    if trend:
        ctx.metrics.trend(trend).add(res.latency_ms)
    ctx.metrics.counter("menu_requests").add(1)
    success = ctx.metrics.check(check, res.ok)
    ctx.metrics.rate("menu_success_rate").add(success)
    return success


async def menu_stress(ctx: RunContext, actor: Actor) -> bool:
    """30% full menu, 20% categories, 20% items, 15% addons, 15% variations."""
    action = random.random()

    if action < 0.3:
        if ctx.restaurant_id:
            success = await _menu_fetch(ctx, _menu_path(ctx), "Menu fetch status 200", "menu_fetch_duration")
        else:
            logger.warning("RESTAURANT_ID not set, skipping full menu fetch")
            success = False
    elif action < 0.5:
        success = await _menu_fetch(ctx, "/category", "Category fetch status 200", "category_fetch_duration")
    elif action < 0.7:
        success = await _menu_fetch(ctx, "/item", "Item fetch status 200", "item_fetch_duration")
    elif action < 0.85:
        success = await _menu_fetch(ctx, "/addon-group", "Addon fetch status 200", "addon_fetch_duration")
        await ctx.think(100, 300)
        await ctx.client.get("/addon-group/items")
        ctx.metrics.counter("menu_requests").add(1)
    else:
        success = await _menu_fetch(ctx, "/variation", "Variation fetch status 200", None)

    return success


# =============================================================================
# BREAKING-POINT STRESS
# =============================================================================

def _stress_outcome(ctx: RunContext, success: bool, start: float, trend: Optional[str] = None) -> bool:
    duration = _elapsed_ms(start)
    ctx.metrics.trend("response_time").add(duration)
    if trend:
        ctx.metrics.trend(trend).add(duration)
    ctx.metrics.rate("success_rate").add(success)
    ctx.metrics.rate("error_rate").add(not success)
    return success


async def stress_menu(ctx: RunContext, actor: Actor) -> bool:
    start = time.perf_counter()
    res = await ctx.client.get(_menu_path(ctx))
    if res.status == 0:
        ctx.metrics.counter("timeouts").add(1)
    return _stress_outcome(ctx, res.ok, start, "menu_response_time")


async def stress_login(ctx: RunContext, actor: Actor) -> bool:
    start = time.perf_counter()
    res = await ctx.client.post("/login/otp", build_login_request(actor.name, actor.mobile))
    if res.ok:
        verify = build_otp_verify_request(actor.mobile, ctx.restaurant_id, ctx.config.otp)
        res = await ctx.client.post("/login/verify-otp", verify)
    return _stress_outcome(ctx, res.ok, start, "login_response_time")


async def stress_order(ctx: RunContext, actor: Actor) -> bool:
    start = time.perf_counter()
    ctx.metrics.counter("orders_attempted").add(1)
    result = await OrderLifecycleWorkflow(ctx, ORDER_FLOW).run(actor)
    ctx.metrics.counter("orders_succeeded" if result.success else "orders_failed").add(1)
    return _stress_outcome(ctx, result.success, start, "order_response_time")


async def stress_tracking(ctx: RunContext, actor: Actor) -> bool:
    start = time.perf_counter()
    if ctx.trackable_order_ids:
        res = await ctx.client.get(f"/order/{random.choice(ctx.trackable_order_ids)}")
        success = res.status in TRACKABLE_OK
    else:
        res = await ctx.client.get("/order")
        success = res.ok
    return _stress_outcome(ctx, success, start)


async def stress_mixed(ctx: RunContext, actor: Actor) -> bool:
    start = time.perf_counter()
    res = await ctx.client.get(random.choice(STRESS_MIXED_PATHS))
    if res.status == 0:
        ctx.metrics.counter("timeouts").add(1)
    return _stress_outcome(ctx, res.ok, start)


# =============================================================================
# SMOKE
# =============================================================================

async def smoke(ctx: RunContext, actor: Actor) -> bool:
    """Touch every major endpoint once; each check feeds ``smoke_success_rate``."""
    results: List[bool] = []
    rid = ctx.restaurant_id

    async def probe(label: str, method: str, path: str, payload=None, ok=(200,)) -> bool:
        res = await ctx.client.request(method, path, payload)
        passed = ctx.metrics.check(label, res.status in ok)
        ctx.metrics.rate("smoke_success_rate").add(passed)
        results.append(passed)
        logger.info("   %-18s %s", label, "PASS" if passed else "FAIL")
        return passed

    await probe("Restaurant list OK", "GET", "/restaurant")
    if rid:
        await probe("Restaurant get OK", "GET", f"/restaurant/{rid}")
    await ctx.think(500, 500)

    await probe("Category list OK", "GET", "/category")
    await probe("Item list OK", "GET", "/item")
    if rid:
        await probe("Menu category OK", "GET", _menu_path(ctx))
    await probe("Addon groups OK", "GET", "/addon-group")
    await ctx.think(500, 500)

    otp_ok = await probe("OTP request OK", "POST", "/login/otp",
                         build_login_request("Smoke Test", "9800000001"))
    if otp_ok and rid:
        await probe("OTP verify OK", "POST", "/login/verify-otp",
                    build_otp_verify_request("9800000001", rid, ctx.config.otp))
    await ctx.think(500, 500)

    await probe("Order list OK", "GET", "/order")
    await ctx.think(500, 500)
    await probe("Customer list OK", "GET", "/customer")

    if rid:
        await ctx.think(500, 500)
        await probe("Delivery quote OK", "GET",
                    f"/delivery/quote/{rid}?addressId={FALLBACK_ADDRESS_ID}", ok=TRACKABLE_OK)

    passed = sum(results)
    logger.info("Smoke test results: %d passed, %d failed", passed, len(results) - passed)
    return passed == len(results)
