from dataclasses import replace

import pytest

from hyp_loadtest.workflow import (
    LIFECYCLE,
    ORDER_FLOW,
    SINGLE_ORDER,
    USER_JOURNEY,
    OrderLifecycleWorkflow,
    Phase,
    status_reached,
)

NO_BROWSE = replace(LIFECYCLE, include_browse=False)


async def run(ctx, options=LIFECYCLE, slot=0):
    return await OrderLifecycleWorkflow(ctx, options).run(ctx.actor_for(slot))


@pytest.mark.parametrize("current, target, reached", [
    ("PAID", "PAID", True),
    ("ACCEPTED", "PAID", True),
    ("PAYMENT_PENDING", "PAID", False),
    ("DELIVERED", "ACCEPTED", True),
    ("CANCELLED", "PAID", False),
    (None, "PAID", False),
])
def test_status_reached(current, target, reached):
    assert status_reached(current, target) is reached


async def test_full_lifecycle(ctx, backend):
    result = await run(ctx)

    assert result.success
    assert result.aborted_at is None
    assert [o.phase for o in result.outcomes] == list(Phase)
    assert all(o.success for o in result.outcomes)

    state = result.state
    assert state.customer_id == "cust-9800000000"
    assert state.address_id == "addr-2"
    assert state.payment_order_id == f"order_pay{state.order_id}"
    assert state.final_status == "DELIVERED"
    assert state.delivery.delivery_order_id == f"DLV{state.order_id}"
    assert state.delivery.channel_order_id == f"CH{state.order_id}"

    pos = backend.bodies["/pos/order/callback"]
    assert [(b["restID"], b["status"]) for b in pos] == [("ms-1", "3"), ("ms-1", "5")]

    callbacks = backend.bodies["/delivery/callback"]
    assert [b["fulfillment"]["status"] for b in callbacks] == [
        "CREATED", "OUT_FOR_PICKUP", "PICKED_UP", "OUT_FOR_DELIVERY", "DELIVERED",
    ]
    assert [len(b["fulfillment"]["logs"]) for b in callbacks] == [1, 2, 3, 4, 5]

    m = ctx.metrics
    assert m.rates["lifecycle_success_rate"].rate == 1
    assert m.trends["total_lifecycle_duration"].count == 1
    assert m.counters["orders_created"].value == 1
    assert m.counters["orders_delivered"].value == 1
    assert m.trends["payment_duration"].count == 1
    assert m.rates["checks"].fails == 0


async def test_otp_verify_rejected_aborts_after_two_calls(ctx, backend):
    backend.override("POST", "/login/verify-otp", 401, {"message": "invalid otp"})

    result = await run(ctx, NO_BROWSE)

    assert not result.success
    assert result.aborted_at == Phase.LOGIN
    assert backend.paths() == ["POST /login/otp", "POST /login/verify-otp"]
    assert ctx.metrics.rates["login_success_rate"].rate == 0
    assert ctx.metrics.rates["lifecycle_success_rate"].total == 1
    assert ctx.metrics.rates["lifecycle_success_rate"].rate == 0


async def test_otp_request_rejected_aborts_immediately(ctx, backend):
    backend.override("POST", "/login/otp", 429, {"message": "slow down"})

    result = await run(ctx, NO_BROWSE)

    assert result.aborted_at == Phase.LOGIN
    assert backend.paths() == ["POST /login/otp"]


async def test_order_rejected_stops_before_payment(ctx, backend):
    backend.override("POST", "/order", 500, {"message": "boom"})

    result = await run(ctx, NO_BROWSE)

    assert result.aborted_at == Phase.CREATE_ORDER
    assert backend.count("POST", "/payment") == 0
    assert ctx.metrics.rates["order_success_rate"].rate == 0
    assert "orders_created" not in ctx.metrics.counters


async def test_lowercase_delivered_is_not_delivered(ctx, backend):
    backend.delivered_label = "delivered"

    result = await run(ctx, NO_BROWSE)

    assert not result.success
    assert result.state.final_status == "delivered"
    assert result.outcome(Phase.TRACKING).success is False
    assert result.aborted_at is None
    assert "orders_delivered" not in ctx.metrics.counters


async def test_missing_delivery_record_skips_callbacks(ctx, backend):
    backend.auto_dispatch = False

    result = await run(ctx, SINGLE_ORDER)

    assert not result.success
    assert result.outcome(Phase.DELIVERY_CALLBACKS).success is False
    assert result.aborted_at is None
    assert result.state.delivery is None
    assert backend.count("POST", "/delivery/callback") == 0
    assert backend.count("GET", "/order/track/") == 1
    assert ctx.metrics.rates["delivery_success_rate"].rate == 0


async def test_single_order_uses_configured_customer(ctx, backend):
    result = await run(ctx, SINGLE_ORDER)

    assert result.success
    assert backend.count("POST", "/login") == 0
    assert backend.count("POST", "/delivery/fulfill") == 0
    assert backend.bodies["/order"][0]["customerId"] == "501"
    assert len(backend.bodies["/delivery/callback"]) == 7


async def test_single_order_without_customer_aborts(ctx, backend):
    ctx.config = replace(ctx.config, customer_id="")

    result = await run(ctx, SINGLE_ORDER)

    assert result.aborted_at == Phase.LOGIN
    assert backend.calls == []


async def test_rejected_callbacks_do_not_extend_history(ctx, backend):
    backend.override("POST", "/delivery/callback", 500, {"message": "nope"})

    result = await run(ctx, NO_BROWSE)

    assert not result.success
    callbacks = backend.bodies["/delivery/callback"]
    assert len(callbacks) == 5
    assert all(len(b["fulfillment"]["logs"]) == 1 for b in callbacks)
    assert result.state.delivery.logs == []


async def test_status_poll_failure_is_soft(ctx, backend):
    # Verify answers 200 but never moves the order to PAID
    backend.override("POST", "/payment/verify/{order_id}", 200, {"data": []})

    result = await run(ctx, NO_BROWSE)

    assert result.outcome(Phase.CONFIRM_PAID).success is False
    assert backend.count("GET", f"/order/{result.state.order_id}") > 2
    assert result.success


async def test_address_created_when_customer_has_none(ctx, backend):
    backend.addresses = []

    result = await run(ctx, NO_BROWSE)

    assert backend.count("POST", "/address") == 1
    assert result.state.address_id.startswith("addr-")
    assert backend.bodies["/order"][0]["deliveryDetails"]["addressId"] == result.state.address_id


async def test_user_journey_stops_after_payment(ctx, backend):
    result = await run(ctx, USER_JOURNEY)

    assert result.success
    assert result.outcomes[-1].phase == Phase.VERIFY_PAYMENT
    assert backend.count("POST", "/pos") == 0
    assert ctx.metrics.rates["journey_success_rate"].rate == 1
    assert ctx.metrics.trends["total_journey_duration"].count == 1


async def test_order_flow_skips_browse_and_address(ctx, backend):
    result = await run(ctx, ORDER_FLOW)

    assert result.success
    assert [o.phase for o in result.outcomes] == [
        Phase.LOGIN, Phase.CREATE_ORDER, Phase.CREATE_PAYMENT, Phase.VERIFY_PAYMENT,
    ]
    assert backend.count("GET", "/menu") == 0
    assert backend.count("GET", "/address") == 0
    assert ctx.metrics.trends["order_flow_duration"].count == 1


async def test_missing_payment_order_id_aborts_at_payment(ctx, backend):
    backend.override("POST", "/payment/{order_id}", 200, {"data": [{}]})

    result = await run(ctx, NO_BROWSE)

    assert result.aborted_at == Phase.CREATE_PAYMENT
    assert backend.count("POST", "/payment/verify/") == 0
    assert backend.count("POST", "/pos/order/callback") == 0
