"""
Order Lifecycle Workflow
========================
Drives one order end to end for one actor:

    Browse -> Login -> Address & Quote -> Create Order -> Create Payment
    -> Verify Payment -> Confirm PAID -> POS Accept -> Ready for Delivery
    -> Fulfill Delivery -> Delivery Callbacks -> User Tracking

Phases run strictly in order. Identifiers (customer, order, payment order,
delivery order) are threaded forward in a per-execution
:class:`LifecycleState`. A hard failure (no customer id, no order id, no
payment order id) aborts the rest of the run; soft failures are recorded and
the workflow continues. Metrics are always recorded before returning and
nothing is retried.

Variants (lifecycle, single order, user journey, order flow) are the same
driver with different :class:`WorkflowOptions`.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Any, Tuple

from hyp_loadtest.context import RunContext
from hyp_loadtest.decoding import (
    Decoded,
    DecodeError,
    DeliveryRecord,
    decode_address_id,
    decode_customer_id,
    decode_delivery_record,
    decode_order_id,
    decode_order_status,
    decode_payment_order_id,
)
from hyp_loadtest.payloads import (
    Actor,
    DeliveryState,
    DETAILED_FULFILLMENT,
    FALLBACK_ADDRESS_ID,
    FulfillmentStatus,
    OrderOptions,
    OrderStatus,
    STANDARD_FULFILLMENT,
    build_address_request,
    build_login_request,
    build_order_draft,
    build_otp_verify_request,
    build_payment_verify_request,
    build_status_update,
    random_channel_order_id,
)

logger = logging.getLogger(__name__)


class Phase(Enum):
    BROWSE = "browse"
    LOGIN = "login"
    ADDRESS_QUOTE = "address_quote"
    CREATE_ORDER = "create_order"
    CREATE_PAYMENT = "create_payment"
    VERIFY_PAYMENT = "verify_payment"
    CONFIRM_PAID = "confirm_paid"
    POS_ACCEPT = "pos_accept"
    READY_FOR_DELIVERY = "ready_for_delivery"
    DELIVERY_FULFILL = "delivery_fulfill"
    DELIVERY_CALLBACKS = "delivery_callbacks"
    TRACKING = "tracking"


# Observed order statuses in lifecycle order, used to accept "reached or passed"
_LIFECYCLE_ORDER = [
    OrderStatus.CREATED.value,
    OrderStatus.PAYMENT_PENDING.value,
    OrderStatus.PAID.value,
    OrderStatus.ACCEPTED.value,
    OrderStatus.READY_FOR_DELIVERY.value,
    OrderStatus.SEARCHING_RIDER.value,
    OrderStatus.RIDER_ASSIGNED.value,
    OrderStatus.OUT_FOR_PICKUP.value,
    OrderStatus.PICKED_UP.value,
    OrderStatus.OUT_FOR_DELIVERY.value,
    OrderStatus.DELIVERED.value,
]


def status_reached(current: Optional[str], target: str) -> bool:
    if current not in _LIFECYCLE_ORDER:
        return False
    return _LIFECYCLE_ORDER.index(current) >= _LIFECYCLE_ORDER.index(target)


@dataclass(frozen=True)
class WorkflowOptions:
    """Which phases run and how the order is built."""
    include_browse: bool = True
    include_login: bool = True
    include_address_phase: bool = True
    # Order-flow style runs end after payment verification
    stop_after_payment: bool = False
    include_ready_for_delivery: bool = True
    include_delivery_fulfill: bool = True
    fulfillment_statuses: Tuple[FulfillmentStatus, ...] = STANDARD_FULFILLMENT
    order_type: str = "1"
    payment_type: str = "CREDIT"
    item_count: Optional[int] = None
    quantity: Optional[int] = None
    # False when order_success_rate is the success_metric and measures the whole run
    order_rate_per_phase: bool = True
    success_metric: str = "lifecycle_success_rate"
    duration_metric: str = "total_lifecycle_duration"


LIFECYCLE = WorkflowOptions()

SINGLE_ORDER = WorkflowOptions(
    include_browse=False,
    include_login=False,
    include_address_phase=False,
    include_delivery_fulfill=False,
    fulfillment_statuses=DETAILED_FULFILLMENT,
)

USER_JOURNEY = WorkflowOptions(
    stop_after_payment=True,
    success_metric="journey_success_rate",
    duration_metric="total_journey_duration",
)

ORDER_FLOW = WorkflowOptions(
    include_browse=False,
    include_address_phase=False,
    stop_after_payment=True,
    order_rate_per_phase=False,
    success_metric="order_success_rate",
    duration_metric="order_flow_duration",
)

ORDER_STRESS = WorkflowOptions(
    include_browse=False,
    include_address_phase=False,
    stop_after_payment=True,
    success_metric="order_flow_success_rate",
    duration_metric="total_order_flow_duration",
)


@dataclass
class PhaseOutcome:
    phase: Phase
    success: bool
    duration_ms: float
    detail: Optional[str] = None


@dataclass
class LifecycleState:
    """Identifiers threaded between phases of one execution."""
    customer_id: Any = None
    address_id: Optional[Any] = None
    order_id: Any = None
    payment_order_id: Any = None
    payment_verified: bool = False
    delivery: Optional[DeliveryState] = None
    final_status: Optional[str] = None


@dataclass
class WorkflowResult:
    success: bool
    state: LifecycleState
    duration_ms: float
    outcomes: List[PhaseOutcome] = field(default_factory=list)
    # Phase whose missing identifier stopped the run
    aborted_at: Optional[Phase] = None

    def outcome(self, phase: Phase) -> Optional[PhaseOutcome]:
        return next((o for o in self.outcomes if o.phase == phase), None)


class _Abort(Exception):
    """Internal signal: a hard dependency is missing, stop the execution."""

    def __init__(self, phase: Phase):
        super().__init__(phase.value)
        self.phase = phase


class OrderLifecycleWorkflow:
    """One configurable driver for every order-placing traffic type."""

    def __init__(self, ctx: RunContext, options: WorkflowOptions = LIFECYCLE):
        self.ctx = ctx
        self.options = options
        self.client = ctx.client
        self.metrics = ctx.metrics

    # =========================================================================
    # Bookkeeping
    # =========================================================================

    def _record(self, outcomes: List[PhaseOutcome], phase: Phase, success: bool,
                start: float, detail: Optional[str] = None) -> PhaseOutcome:
        outcome = PhaseOutcome(phase, success, (time.perf_counter() - start) * 1000, detail)
        outcomes.append(outcome)
        self.metrics.rate("step_success_rate").add(success)
        self.metrics.trend("step_duration").add(outcome.duration_ms)
        if not success:
            logger.debug("Phase %s failed: %s", phase.value, detail)
        return outcome

    async def _poll_status(self, order_id: Any, target: str) -> Tuple[bool, Optional[str]]:
        """Poll the order until it reaches ``target`` or the deadline passes."""
        deadline = time.monotonic() + self.ctx.config.poll_timeout
        status = None
        while True:
            res = await self.client.get(f"/order/{order_id}")
            result = decode_order_status(res)
            if isinstance(result, Decoded):
                status = str(result.value)
                if status_reached(status, target):
                    return True, status
            if time.monotonic() + self.ctx.config.poll_interval > deadline:
                return False, status
            await asyncio.sleep(self.ctx.config.poll_interval)

    # =========================================================================
    # Phases
    # =========================================================================

    async def _browse(self, outcomes: List[PhaseOutcome]):
        start = time.perf_counter()
        res = await self.client.get(f"/menu/category?restaurantId={self.ctx.restaurant_id}")
        menu_ok = self.metrics.check("Menu loaded", res.ok)

        await self.ctx.think(300, 600)

        res = await self.client.get("/addon-group")
        addons_ok = self.metrics.check("Addons loaded", res.ok)

        outcome = self._record(outcomes, Phase.BROWSE, menu_ok and addons_ok, start)
        self.metrics.trend("menu_browse_duration").add(outcome.duration_ms)

    async def _login(self, actor: Actor, state: LifecycleState, outcomes: List[PhaseOutcome]):
        start = time.perf_counter()
        login = build_login_request(actor.name, actor.mobile)
        res = await self.client.post("/login/otp", login)

        if not res.ok:
            self.metrics.rate("login_success_rate").add(False)
            outcome = self._record(outcomes, Phase.LOGIN, False, start, f"OTP request HTTP {res.status}")
            self.metrics.trend("login_duration").add(outcome.duration_ms)
            raise _Abort(Phase.LOGIN)

        await self.ctx.think(100, 200)

        verify = build_otp_verify_request(login["mobile"], self.ctx.restaurant_id, self.ctx.config.otp)
        res = await self.client.post("/login/verify-otp", verify)
        result = decode_customer_id(res)

        success = self.metrics.check("Login successful", isinstance(result, Decoded))
        self.metrics.rate("login_success_rate").add(success)
        detail = result.reason if isinstance(result, DecodeError) else None
        outcome = self._record(outcomes, Phase.LOGIN, success, start, detail)
        self.metrics.trend("login_duration").add(outcome.duration_ms)

        if not success:
            raise _Abort(Phase.LOGIN)
        state.customer_id = result.value

    async def _address_and_quote(self, state: LifecycleState, outcomes: List[PhaseOutcome]):
        start = time.perf_counter()

        res = await self.client.get(f"/address?customerId_eq={state.customer_id}")
        self.metrics.check("Address API responded", res.status in (200, 404))
        address = decode_address_id(res)

        if isinstance(address, DecodeError):
            logger.info("No address for customer %s (%s), creating one", state.customer_id, address.reason)
            payload = build_address_request(state.customer_id, self.ctx.restaurant.location)
            address = decode_address_id(await self.client.post("/address", payload))

        if isinstance(address, Decoded):
            state.address_id = address.value
        else:
            logger.warning("No address available for customer %s, using fallback %s",
                           state.customer_id, FALLBACK_ADDRESS_ID)
            state.address_id = FALLBACK_ADDRESS_ID

        res = await self.client.get(
            f"/delivery/quote/{self.ctx.restaurant_id}?addressId={state.address_id}"
        )
        quote_ok = self.metrics.check("Quote received", res.status in (200, 404))
        outcome = self._record(outcomes, Phase.ADDRESS_QUOTE, quote_ok, start)
        self.metrics.trend("quote_duration").add(outcome.duration_ms)

    async def _create_order(self, state: LifecycleState, outcomes: List[PhaseOutcome]):
        start = time.perf_counter()
        draft = build_order_draft(
            self.ctx.restaurant_id,
            state.customer_id,
            self.ctx.menu,
            OrderOptions(
                order_type=self.options.order_type,
                payment_type=self.options.payment_type,
                address_id=state.address_id,
                item_count=self.options.item_count,
                quantity=self.options.quantity,
            ),
        )

        result: Any = DecodeError("no items available to order")
        if draft is not None:
            res = await self.client.post("/order", draft.to_payload())
            self.metrics.check("Order created", res.ok)
            result = decode_order_id(res)

        success = isinstance(result, Decoded)
        if self.options.order_rate_per_phase:
            self.metrics.rate("order_success_rate").add(success)
        outcome = self._record(outcomes, Phase.CREATE_ORDER, success, start,
                               result.reason if not success else None)
        self.metrics.trend("order_duration").add(outcome.duration_ms)

        if not success:
            raise _Abort(Phase.CREATE_ORDER)
        state.order_id = result.value
        self.metrics.counter("orders_created").add(1)

    async def _create_payment(self, state: LifecycleState, outcomes: List[PhaseOutcome]):
        start = time.perf_counter()
        res = await self.client.post(f"/payment/{state.order_id}", {})
        self.metrics.check("Payment created", res.ok)
        result = decode_payment_order_id(res)

        success = isinstance(result, Decoded)
        self.metrics.rate("payment_success_rate").add(success)
        outcome = self._record(outcomes, Phase.CREATE_PAYMENT, success, start,
                               result.reason if not success else None)
        self.metrics.trend("payment_create_duration").add(outcome.duration_ms)

        if not success:
            raise _Abort(Phase.CREATE_PAYMENT)
        state.payment_order_id = result.value

    async def _verify_payment(self, state: LifecycleState, outcomes: List[PhaseOutcome]):
        start = time.perf_counter()
        payload = build_payment_verify_request(state.payment_order_id)
        res = await self.client.post(f"/payment/verify/{state.order_id}", payload)

        state.payment_verified = self.metrics.check("Payment verified", res.ok)
        self.metrics.rate("payment_success_rate").add(state.payment_verified)
        outcome = self._record(outcomes, Phase.VERIFY_PAYMENT, state.payment_verified, start,
                               None if res.ok else f"HTTP {res.status}")
        self.metrics.trend("payment_verify_duration").add(outcome.duration_ms)

    async def _confirm_paid(self, state: LifecycleState, outcomes: List[PhaseOutcome]):
        start = time.perf_counter()
        reached, status = await self._poll_status(state.order_id, OrderStatus.PAID.value)
        self.metrics.check("Status is PAID", reached)
        self._record(outcomes, Phase.CONFIRM_PAID, reached, start,
                     None if reached else f"last status {status}")

    async def _pos_update(self, state: LifecycleState, outcomes: List[PhaseOutcome],
                          phase: Phase, target: OrderStatus):
        start = time.perf_counter()
        payload = build_status_update(self.ctx.restaurant.menu_sharing_code, state.order_id, target.value)
        res = await self.client.post("/pos/order/callback", payload)

        success = self.metrics.check(f"Order {target.value.lower()}", res.ok)
        self.metrics.rate("pos_success_rate").add(success)
        outcome = self._record(outcomes, phase, success, start, None if success else f"HTTP {res.status}")
        self.metrics.trend("pos_duration").add(outcome.duration_ms)
        return success

    async def _fulfill(self, state: LifecycleState, outcomes: List[PhaseOutcome]):
        start = time.perf_counter()
        res = await self.client.post(f"/delivery/fulfill/{state.order_id}", {})
        success = self.metrics.check("Delivery fulfilled", res.ok)
        self.metrics.rate("delivery_success_rate").add(success)
        outcome = self._record(outcomes, Phase.DELIVERY_FULFILL, success, start,
                               None if success else f"HTTP {res.status}")
        self.metrics.trend("delivery_duration").add(outcome.duration_ms)

    async def _delivery_callbacks(self, state: LifecycleState, outcomes: List[PhaseOutcome]):
        start = time.perf_counter()
        record = decode_delivery_record(await self.client.get(f"/delivery/status/{state.order_id}"))

        if isinstance(record, DecodeError):
            logger.warning("No delivery record found for order %s (%s), skipping delivery callbacks",
                           state.order_id, record.reason)
            self.metrics.rate("delivery_success_rate").add(False)
            outcome = self._record(outcomes, Phase.DELIVERY_CALLBACKS, False, start, record.reason)
            self.metrics.trend("delivery_duration").add(outcome.duration_ms)
            return

        delivery: DeliveryRecord = record.value
        state.delivery = DeliveryState(
            order_id=state.order_id,
            delivery_order_id=delivery.delivery_order_id,
            channel_order_id=delivery.channel_order_id or random_channel_order_id(),
        )

        all_ok = True
        for status in self.options.fulfillment_statuses:
            payload, logs = state.delivery.callback_for(status)
            res = await self.client.post("/delivery/callback", payload)
            if self.metrics.check(f"Delivery {status.value}", res.ok):
                state.delivery.accept(status, logs)
            else:
                logger.warning("Delivery callback %s for order %s failed (HTTP %s)",
                               status.value, state.order_id, res.status)
                all_ok = False
            await self.ctx.think(50, 150)

        self.metrics.rate("delivery_success_rate").add(all_ok)
        outcome = self._record(outcomes, Phase.DELIVERY_CALLBACKS, all_ok, start)
        self.metrics.trend("delivery_duration").add(outcome.duration_ms)

    async def _tracking(self, state: LifecycleState, outcomes: List[PhaseOutcome]) -> bool:
        start = time.perf_counter()
        res = await self.client.get(f"/order/{state.order_id}")
        result = decode_order_status(res)
        state.final_status = str(result.value) if isinstance(result, Decoded) else None
        delivered = self.metrics.check("Status DELIVERED", state.final_status == OrderStatus.DELIVERED.value)

        res = await self.client.get(f"/order/track/{state.order_id}")
        self.metrics.check("Track OK", res.ok)

        outcome = self._record(outcomes, Phase.TRACKING, delivered, start,
                               None if delivered else f"status {state.final_status}")
        self.metrics.trend("tracking_duration").add(outcome.duration_ms)
        if delivered:
            self.metrics.counter("orders_delivered").add(1)
        return delivered

    # =========================================================================
    # Driver
    # =========================================================================

    async def run(self, actor: Actor) -> WorkflowResult:
        opts = self.options
        state = LifecycleState()
        outcomes: List[PhaseOutcome] = []
        start = time.perf_counter()
        success = False
        aborted_at = None

        try:
            if opts.include_browse:
                await self._browse(outcomes)
                await self.ctx.think(500, 1000)

            if opts.include_login:
                await self._login(actor, state, outcomes)
                await self.ctx.think(200, 400)
            else:
                state.customer_id = self.ctx.config.customer_id or None
                if state.customer_id is None:
                    self._record(outcomes, Phase.LOGIN, False, time.perf_counter(), "no customer id configured")
                    raise _Abort(Phase.LOGIN)

            if opts.include_address_phase:
                await self._address_and_quote(state, outcomes)
                await self.ctx.think(200, 400)

            await self._create_order(state, outcomes)
            await self.ctx.think(200, 400)

            await self._create_payment(state, outcomes)
            await self.ctx.think(100, 200)

            await self._verify_payment(state, outcomes)
            self.metrics.trend("payment_duration").add(
                sum(o.duration_ms for o in outcomes if o.phase in (Phase.CREATE_PAYMENT, Phase.VERIFY_PAYMENT))
            )

            if opts.stop_after_payment:
                success = state.payment_verified
            else:
                await self._confirm_paid(state, outcomes)
                await self.ctx.think(200, 400)

                if await self._pos_update(state, outcomes, Phase.POS_ACCEPT, OrderStatus.ACCEPTED):
                    reached, status = await self._poll_status(state.order_id, OrderStatus.ACCEPTED.value)
                    self.metrics.check("Status is ACCEPTED", reached)

                if opts.include_ready_for_delivery:
                    await self.ctx.think(200, 400)
                    await self._pos_update(state, outcomes, Phase.READY_FOR_DELIVERY,
                                           OrderStatus.READY_FOR_DELIVERY)

                if opts.include_delivery_fulfill:
                    await self._fulfill(state, outcomes)
                    await self.ctx.think(200, 400)

                if opts.fulfillment_statuses:
                    await self._delivery_callbacks(state, outcomes)
                    await self.ctx.think(200, 400)

                success = await self._tracking(state, outcomes)

        except _Abort as abort:
            success = False
            aborted_at = abort.phase

        duration_ms = (time.perf_counter() - start) * 1000
        self.metrics.rate(opts.success_metric).add(success)
        self.metrics.trend(opts.duration_metric).add(duration_ms)
        return WorkflowResult(success, state, duration_ms, outcomes, aborted_at)
