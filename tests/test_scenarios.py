from dataclasses import replace

import pytest

from hyp_loadtest.config import LoadTestConfig
from hyp_loadtest.errors import SetupError
from hyp_loadtest import journeys
from hyp_loadtest.scenarios import SCENARIOS, Scenario, get_scenario, prepare, run_scenario
from hyp_loadtest.scheduler import ExecutorKind, LoadProfile, WeightedChoice


def test_every_scenario_has_thresholds_and_journeys():
    for name, scenario in SCENARIOS.items():
        assert scenario.name == name
        assert scenario.thresholds
        assert scenario.journeys.options


def test_unknown_scenario():
    with pytest.raises(SetupError):
        get_scenario("soak")


@pytest.mark.parametrize("mode, executor", [
    ("sanity", ExecutorKind.PER_ACTOR_ITERATIONS),
    ("single", ExecutorKind.RAMPING_ACTORS),
    ("multi", ExecutorKind.SHARED_ITERATIONS),
])
def test_lifecycle_profile_per_mode(mode, executor):
    config = LoadTestConfig(user_mode=mode, order_count=200)
    assert get_scenario("lifecycle").profile_for(config).executor == executor


def test_multi_mode_sizes_shared_iterations():
    profile = get_scenario("lifecycle").profile_for(LoadTestConfig(user_mode="multi", order_count=200))
    assert profile.iterations == 200
    assert profile.actors == 50

    profile = get_scenario("lifecycle").profile_for(LoadTestConfig(user_mode="multi", order_count=5))
    assert profile.actors == 5


def test_multi_mode_only_where_supported():
    profile = get_scenario("load").profile_for(LoadTestConfig(user_mode="multi"))
    assert profile.executor == ExecutorKind.RAMPING_ACTORS


def test_max_actors_caps_profile():
    profile = get_scenario("stress").profile_for(LoadTestConfig(max_actors=20))
    assert profile.peak_actors == 20


def test_smoke_always_runs_once():
    profile = get_scenario("smoke").profile_for(LoadTestConfig(user_mode="single"))
    assert profile.executor == ExecutorKind.PER_ACTOR_ITERATIONS
    assert profile.iterations == 1


@pytest.mark.parametrize("name, pause", [
    ("load", (500, 1500)),
    ("stress", (100, 500)),
    ("lifecycle", (500, 1000)),
    ("user-journey", (1000, 2000)),
    ("login-stress", (500, 1500)),
    ("order-stress", (500, 1000)),
    ("menu-stress", (300, 1000)),
    ("tracking-stress", (500, 1500)),
    ("smoke", None),
    ("single-order", None),
])
def test_iteration_pause(name, pause):
    assert get_scenario(name).iteration_think == pause


# =============================================================================
# Setup
# =============================================================================

async def test_prepare_requires_restaurant(ctx, backend):
    ctx.config = replace(ctx.config, restaurant_id="")
    with pytest.raises(SetupError):
        await prepare(get_scenario("lifecycle"), ctx)
    assert backend.calls == []


async def test_prepare_requires_customer_for_single_order(ctx):
    ctx.config = replace(ctx.config, customer_id="")
    with pytest.raises(SetupError):
        await prepare(get_scenario("single-order"), ctx)


async def test_prepare_loads_restaurant_and_menu(ctx):
    await prepare(get_scenario("lifecycle"), ctx)

    assert ctx.restaurant.name == "Test Kitchen"
    assert ctx.restaurant.menu_sharing_code == "ms-1"
    assert ctx.restaurant.location == {"latitude": 28.45, "longitude": 77.02}
    assert sorted(item.id for item in ctx.menu.items) == ["item-100", "item-50"]
    assert len(ctx.menu.taxes) == 2


async def test_prepare_collects_trackable_orders(ctx, backend):
    delivered = backend.add_order("DELIVERED", delivery_status="fulfilled")
    backend.add_order("OUT_FOR_DELIVERY", delivery_status="pending")
    backend.add_order("CREATED")
    picked = backend.add_order("OUT_FOR_PICKUP", delivery_status="completed")

    await prepare(get_scenario("tracking-stress"), ctx)

    assert sorted(ctx.trackable_order_ids) == sorted([delivered, picked])


async def test_prepare_collects_recent_orders(ctx, backend):
    ids = [backend.add_order("CREATED") for _ in range(3)]
    await prepare(get_scenario("stress"), ctx)
    assert list(ctx.trackable_order_ids) == ids


# =============================================================================
# Runs
# =============================================================================

async def test_smoke_run_passes(config):
    outcome = await run_scenario(get_scenario("smoke"), config)

    assert outcome.passed
    assert outcome.stats.completed == 1
    assert outcome.metrics.rates["smoke_success_rate"].rate == 1


async def test_lifecycle_sanity_run_excludes_setup_traffic(config, backend):
    outcome = await run_scenario(get_scenario("lifecycle"), config.with_overrides(user_mode="sanity"))

    assert outcome.passed
    assert outcome.metrics.rates["lifecycle_success_rate"].rate == 1
    assert "http_req_duration{name:get_/restaurant/:id}" not in outcome.metrics.trends
    assert backend.count("GET", "/restaurant/324672") == 1
    assert [b["restID"] for b in backend.bodies["/pos/order/callback"]] == ["ms-1", "ms-1"]


async def test_extra_thresholds_can_fail_a_run(config):
    outcome = await run_scenario(
        get_scenario("smoke"), config, extra_thresholds={"http_reqs": ["count>1000"]},
    )

    assert not outcome.passed
    failed = [r for r in outcome.thresholds if not r.passed]
    assert [(r.metric, r.expression) for r in failed] == [("http_reqs", "count>1000")]


async def test_iterations_are_paced_by_think_time(config, backend):
    paced = Scenario(
        name="paced",
        title="Paced",
        description="Cheap reads with a fixed pause",
        journeys=WeightedChoice([(journeys.other_operations, 1.0)]),
        sanity=LoadProfile.per_actor(iterations=10000, max_duration="1s"),
        thresholds={},
        iteration_think=(400, 400),
    )

    outcome = await run_scenario(paced, config.with_overrides(user_mode="sanity", think_time_scale=1.0))

    assert 1 <= len(backend.calls) <= 3
    assert outcome.stats.completed <= 3
