"""
Scenario Presets
================
Named traffic scenarios: which journeys actors run (and with what weights),
the concurrency profile per user mode, pass/fail thresholds and the setup
data each one needs before actors start.
"""

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Optional, List, Dict, Any, Callable, Awaitable, Tuple

from hyp_loadtest import journeys
from hyp_loadtest.client import ApiClient
from hyp_loadtest.config import LoadTestConfig
from hyp_loadtest.context import RunContext
from hyp_loadtest.errors import SetupError
from hyp_loadtest.menu import (
    fetch_menu,
    fetch_recent_order_ids,
    fetch_restaurant_info,
    fetch_trackable_orders,
)
from hyp_loadtest.metrics import MetricsRegistry, ThresholdResult
from hyp_loadtest.payloads import Actor
from hyp_loadtest.scheduler import LoadProfile, TrafficScheduler, WeightedChoice, SchedulerStats
from hyp_loadtest.workflow import (
    LIFECYCLE,
    SINGLE_ORDER,
    USER_JOURNEY,
    OrderLifecycleWorkflow,
    WorkflowOptions,
)

logger = logging.getLogger(__name__)

Journey = Callable[[RunContext, Actor], Awaitable[bool]]

# =============================================================================
# THRESHOLDS
# =============================================================================

BASE_THRESHOLDS: Dict[str, List[str]] = {
    "http_req_duration": ["p(50)<500", "p(90)<1500", "p(95)<2000", "p(99)<3000"],
    "http_req_failed": ["rate<0.01"],
    "checks": ["rate>0.95"],
}


def _with_base(**extra: List[str]) -> Dict[str, List[str]]:
    thresholds = {k: list(v) for k, v in BASE_THRESHOLDS.items()}
    thresholds.update(extra)
    return thresholds


# =============================================================================
# RAMPING STAGES
# =============================================================================

SHORT_STRESS_STAGES = [("30s", 25), ("1m", 50), ("1m", 100), ("1m", 100), ("1m", 50), ("30s", 0)]


async def run_workflow(options: WorkflowOptions, ctx: RunContext, actor: Actor) -> bool:
    result = await OrderLifecycleWorkflow(ctx, options).run(actor)
    return result.success


@dataclass
class Scenario:
    """One named traffic scenario."""
    name: str
    title: str
    description: str
    journeys: WeightedChoice
    sanity: LoadProfile
    load: Optional[LoadProfile] = None
    # Pause in ms after every iteration; None for one-shot scenarios
    iteration_think: Optional[Tuple[int, int]] = None
    thresholds: Dict[str, List[str]] = field(default_factory=lambda: _with_base())
    # multi mode: shared iterations sized from ORDER_COUNT
    supports_multi: bool = False
    requires_restaurant: bool = False
    requires_customer: bool = False
    load_menu: bool = False
    load_restaurant: bool = False
    # "fulfilled": ids with a fulfilled delivery record, "recent": first ids of /order
    order_ids: Optional[str] = None

    def profile_for(self, config: LoadTestConfig) -> LoadProfile:
        if config.is_sanity or self.load is None:
            profile = self.sanity
        elif config.is_multi and self.supports_multi:
            profile = LoadProfile.shared(
                iterations=config.order_count,
                actors=min(50, config.order_count),
                max_duration="60m",
            )
        else:
            profile = self.load
        return profile.capped(config.max_actors)


SCENARIOS: Dict[str, Scenario] = {
    "smoke": Scenario(
        name="smoke",
        title="💨 Smoke Test",
        description="Touch every major endpoint once",
        journeys=WeightedChoice([(journeys.smoke, 1.0)]),
        sanity=LoadProfile.per_actor(iterations=1, max_duration="5m"),
        thresholds=_with_base(smoke_success_rate=["rate>0.95"]),
    ),
    "single-order": Scenario(
        name="single-order",
        title="🧾 Single Order",
        description="One order for a known customer, POS to DELIVERED",
        journeys=WeightedChoice([(partial(run_workflow, SINGLE_ORDER), 1.0)]),
        sanity=LoadProfile.shared(iterations=1, actors=1, max_duration="5m"),
        thresholds=_with_base(step_success_rate=["rate>0.90"]),
        requires_restaurant=True,
        requires_customer=True,
        load_menu=True,
        load_restaurant=True,
    ),
    "lifecycle": Scenario(
        name="lifecycle",
        title="🔁 Order Lifecycle",
        description="Browse, login, order, pay, POS, delivery callbacks and tracking",
        journeys=WeightedChoice([(partial(run_workflow, LIFECYCLE), 1.0)]),
        sanity=LoadProfile.per_actor(iterations=1, max_duration="10m"),
        load=LoadProfile.ramping([("1m", 10), ("3m", 20), ("5m", 30), ("3m", 20), ("2m", 10), ("1m", 0)]),
        iteration_think=(500, 1000),
        thresholds=_with_base(
            lifecycle_success_rate=["rate>0.80"],
            login_success_rate=["rate>0.95"],
            order_success_rate=["rate>0.90"],
            payment_success_rate=["rate>0.90"],
            pos_success_rate=["rate>0.90"],
            delivery_success_rate=["rate>0.85"],
            total_lifecycle_duration=["p(95)<45000"],
        ),
        supports_multi=True,
        requires_restaurant=True,
        load_menu=True,
        load_restaurant=True,
    ),
    "load": Scenario(
        name="load",
        title="🏃 Mixed Load",
        description="40% browse, 25% order flow, 20% tracking, 15% other reads",
        journeys=WeightedChoice([
            (journeys.browse_menu, 0.40),
            (journeys.order_flow, 0.25),
            (journeys.track_orders, 0.20),
            (journeys.other_operations, 0.15),
        ]),
        sanity=LoadProfile.per_actor(iterations=4, max_duration="5m"),
        load=LoadProfile.ramping([("2m", 25), ("3m", 50), ("5m", 100), ("5m", 100), ("3m", 50), ("2m", 0)]),
        iteration_think=(500, 1500),
        thresholds=_with_base(
            overall_success_rate=["rate>0.90"],
            menu_success_rate=["rate>0.95"],
            order_success_rate=["rate>0.85"],
            menu_duration=["p(95)<2000"],
            order_flow_duration=["p(95)<15000"],
        ),
        requires_restaurant=True,
        load_menu=True,
        order_ids="fulfilled",
    ),
    "stress": Scenario(
        name="stress",
        title="🔥 Breaking Point",
        description="30% menu, 20% login, 25% order+payment, 15% tracking, 10% mixed",
        journeys=WeightedChoice([
            (journeys.stress_menu, 0.30),
            (journeys.stress_login, 0.20),
            (journeys.stress_order, 0.25),
            (journeys.stress_tracking, 0.15),
            (journeys.stress_mixed, 0.10),
        ]),
        sanity=LoadProfile.per_actor(iterations=5, max_duration="5m"),
        load=LoadProfile.ramping([
            ("1m", 100), ("2m", 200), ("2m", 300), ("3m", 500), ("3m", 500), ("2m", 300), ("2m", 0),
        ]),
        iteration_think=(100, 500),
        # Relaxed: the point is to find where it breaks
        thresholds={
            "http_req_duration": ["p(95)<5000", "p(99)<10000"],
            "http_req_failed": ["rate<0.20"],
            "error_rate": ["rate<0.25"],
            "success_rate": ["rate>0.75"],
            "response_time": ["p(95)<5000"],
        },
        requires_restaurant=True,
        load_menu=True,
        order_ids="recent",
    ),
    "login-stress": Scenario(
        name="login-stress",
        title="🔐 Login Stress",
        description="OTP request and verify under ramping load",
        journeys=WeightedChoice([(journeys.login_stress, 1.0)]),
        sanity=LoadProfile.per_actor(iterations=1, max_duration="2m"),
        load=LoadProfile.ramping(SHORT_STRESS_STAGES),
        iteration_think=(500, 1500),
        thresholds=_with_base(
            login_success_rate=["rate>0.95"],
            otp_request_duration=["p(95)<2000"],
            otp_verify_duration=["p(95)<2000"],
            total_login_duration=["p(95)<4000"],
        ),
        requires_restaurant=True,
    ),
    "order-stress": Scenario(
        name="order-stress",
        title="🛒 Order Stress",
        description="Login, order and payment under ramping load",
        journeys=WeightedChoice([(journeys.order_stress, 1.0)]),
        sanity=LoadProfile.per_actor(iterations=1, max_duration="5m"),
        load=LoadProfile.ramping(SHORT_STRESS_STAGES),
        iteration_think=(500, 1000),
        thresholds=_with_base(
            order_success_rate=["rate>0.90"],
            payment_success_rate=["rate>0.90"],
            order_duration=["p(95)<3000"],
            payment_create_duration=["p(95)<2000"],
            payment_verify_duration=["p(95)<2000"],
            total_order_flow_duration=["p(95)<8000"],
        ),
        requires_restaurant=True,
        load_menu=True,
    ),
    "menu-stress": Scenario(
        name="menu-stress",
        title="📋 Menu Stress",
        description="Menu, categories, items, addons and variations",
        journeys=WeightedChoice([(journeys.menu_stress, 1.0)]),
        sanity=LoadProfile.per_actor(iterations=5, max_duration="2m"),
        load=LoadProfile.ramping([("30s", 50), ("1m", 75), ("1m", 90), ("1m", 100), ("1m", 90), ("30s", 0)]),
        iteration_think=(300, 1000),
        thresholds=_with_base(
            menu_success_rate=["rate>0.95"],
            menu_fetch_duration=["p(95)<2000"],
            category_fetch_duration=["p(95)<1500"],
            item_fetch_duration=["p(95)<1500"],
        ),
    ),
    "tracking-stress": Scenario(
        name="tracking-stress",
        title="📍 Tracking Stress",
        description="Order track, delivery status and rider location lookups",
        journeys=WeightedChoice([(journeys.tracking_stress, 1.0)]),
        sanity=LoadProfile.per_actor(iterations=3, max_duration="2m"),
        load=LoadProfile.ramping([("30s", 50), ("1m", 75), ("1m", 100), ("1m", 100), ("1m", 75), ("30s", 0)]),
        iteration_think=(500, 1500),
        thresholds=_with_base(
            tracking_success_rate=["rate>0.95"],
            order_track_duration=["p(95)<1500"],
            delivery_status_duration=["p(95)<1500"],
            rider_location_duration=["p(95)<1500"],
        ),
        order_ids="fulfilled",
    ),
    "user-journey": Scenario(
        name="user-journey",
        title="🚶 User Journey",
        description="Browse, login, address and quote, order, payment",
        journeys=WeightedChoice([(partial(run_workflow, USER_JOURNEY), 1.0)]),
        sanity=LoadProfile.per_actor(iterations=1, max_duration="5m"),
        load=LoadProfile.ramping([("1m", 15), ("2m", 30), ("3m", 50), ("2m", 30), ("2m", 15), ("1m", 0)]),
        iteration_think=(1000, 2000),
        thresholds=_with_base(
            journey_success_rate=["rate>0.85"],
            menu_browse_duration=["p(95)<3000"],
            login_duration=["p(95)<3000"],
            order_duration=["p(95)<4000"],
            payment_duration=["p(95)<3000"],
            total_journey_duration=["p(95)<20000"],
        ),
        requires_restaurant=True,
        load_menu=True,
        load_restaurant=True,
    ),
}


def get_scenario(name: str) -> Scenario:
    try:
        return SCENARIOS[name]
    except KeyError:
        raise SetupError(f"Unknown scenario {name!r}; choose one of {', '.join(SCENARIOS)}")


# =============================================================================
# SETUP AND RUN
# =============================================================================

async def prepare(scenario: Scenario, ctx: RunContext):
    """Fetch run-scoped data; raises :class:`SetupError` before any actor starts."""
    config = ctx.config
    if scenario.requires_restaurant and not config.restaurant_id:
        raise SetupError("RESTAURANT_ID is required! Use --restaurant")
    if scenario.requires_customer and not config.customer_id:
        raise SetupError("CUSTOMER_ID is required! Use --customer")

    if scenario.load_restaurant:
        ctx.restaurant = await fetch_restaurant_info(ctx.client, config.restaurant_id)
        if ctx.restaurant.menu_sharing_code:
            logger.info("Menu sharing code: %s", ctx.restaurant.menu_sharing_code)
        else:
            logger.warning("Could not fetch menuSharingCode from restaurant API")

    if scenario.load_menu and config.restaurant_id:
        ctx.menu = await fetch_menu(ctx.client, config.restaurant_id)
        if ctx.menu is None or ctx.menu.is_empty:
            logger.warning("Using static sample menu")

    if scenario.order_ids == "fulfilled":
        ctx.trackable_order_ids = tuple(await fetch_trackable_orders(ctx.client))
        logger.info("Found %d orders with fulfilled deliveries", len(ctx.trackable_order_ids))
        if not ctx.trackable_order_ids:
            logger.warning("No valid trackable orders found; tracking iterations will fail")
    elif scenario.order_ids == "recent":
        ctx.trackable_order_ids = tuple(await fetch_recent_order_ids(ctx.client))
        logger.info("Found %d existing orders", len(ctx.trackable_order_ids))


@dataclass
class RunOutcome:
    scenario: Scenario
    profile: LoadProfile
    metrics: MetricsRegistry
    stats: SchedulerStats
    thresholds: List[ThresholdResult]

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.thresholds)


async def run_scenario(
    scenario: Scenario,
    config: LoadTestConfig,
    live: bool = False,
    table_factory: Optional[Callable[[TrafficScheduler], Any]] = None,
    extra_thresholds: Optional[Dict[str, List[str]]] = None,
) -> RunOutcome:
    metrics = MetricsRegistry()
    profile = scenario.profile_for(config)

    async with ApiClient(
        config.base_url,
        headers=config.headers(),
        timeout=config.request_timeout,
        verify_ssl=config.verify_ssl,
        metrics=metrics,
        connection_limit=max(10, profile.peak_actors * 2),
    ) as client:
        ctx = RunContext(config=config, client=client, metrics=metrics)
        await prepare(scenario, ctx)

        # Setup traffic does not count towards the run
        metrics = MetricsRegistry()
        client.metrics = metrics
        ctx.metrics = metrics

        async def iteration(slot: int, number: int) -> bool:
            journey: Journey = scenario.journeys.pick()
            success = await journey(ctx, ctx.actor_for(slot))
            if scenario.iteration_think:
                await ctx.think(*scenario.iteration_think)
            return success

        scheduler = TrafficScheduler(profile, iteration, metrics=metrics, live=live, table_factory=table_factory)
        stats = await scheduler.run()

    thresholds = dict(scenario.thresholds)
    thresholds.update(extra_thresholds or {})
    return RunOutcome(scenario, profile, metrics, stats, metrics.evaluate(thresholds))
