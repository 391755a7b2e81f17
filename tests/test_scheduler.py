import asyncio

import pytest

from hyp_loadtest.errors import ConfigurationError
from hyp_loadtest.metrics import MetricsRegistry
from hyp_loadtest.scheduler import (
    ExecutorKind,
    LoadProfile,
    Stage,
    TrafficScheduler,
    WeightedChoice,
)


class Recorder:
    def __init__(self, delay=0.0, result=True):
        self.delay = delay
        self.result = result
        self.calls = []

    async def __call__(self, slot, number):
        self.calls.append((slot, number))
        await asyncio.sleep(self.delay)
        return self.result


# =============================================================================
# Profiles
# =============================================================================

def test_ramping_interpolates_linearly():
    profile = LoadProfile.ramping([(10, 10), (10, 20), (5, 0)])

    assert profile.total_duration == 25
    assert profile.peak_actors == 20
    assert [profile.target_at(t) for t in (0, 5, 10, 15, 22.5, 30)] == [0, 5, 10, 15, 10, 0]


def test_ramping_needs_stages():
    with pytest.raises(ConfigurationError):
        LoadProfile.ramping([])


def test_stage_durations():
    assert Stage.of("2m", 50) == Stage(120, 50)
    assert Stage.of("30s", 0) == Stage(30, 0)


def test_capped():
    profile = LoadProfile.ramping([("1m", 100), ("1m", 500)], start_actors=50).capped(80)
    assert [s.target for s in profile.stages] == [80, 80]
    assert profile.start_actors == 50
    assert profile.peak_actors == 80

    shared = LoadProfile.shared(iterations=200, actors=50).capped(10)
    assert shared.actors == 10
    assert shared.iterations == 200
    assert shared.capped(None) is shared


def test_describe():
    assert LoadProfile.ramping([("1m", 10), ("1m", 0)]).describe() == "Ramping actors: 0 -> 10 -> 0 over 120s"
    assert LoadProfile.per_actor(iterations=1).executor == ExecutorKind.PER_ACTOR_ITERATIONS


# =============================================================================
# Weighted choice
# =============================================================================

def test_weighted_choice():
    choice = WeightedChoice([("browse", 40), ("order", 60)])
    assert choice.pick(0.0) == "browse"
    assert choice.pick(0.39) == "browse"
    assert choice.pick(0.41) == "order"
    assert choice.pick(0.9999) == "order"


@pytest.mark.parametrize("options", [[], [("a", 0)], [("a", -1), ("b", 1)]])
def test_weighted_choice_rejects(options):
    with pytest.raises(ConfigurationError):
        WeightedChoice(options)


# =============================================================================
# Executors
# =============================================================================

async def test_per_actor_iterations():
    recorder = Recorder()
    metrics = MetricsRegistry()
    stats = await TrafficScheduler(LoadProfile.per_actor(iterations=3, actors=2), recorder, metrics).run()

    assert sorted(recorder.calls) == [(0, 0), (0, 1), (0, 2), (1, 0), (1, 1), (1, 2)]
    assert stats.completed == 6
    assert stats.outcomes == {"passed": 6}
    assert metrics.end_time > 0


async def test_shared_iterations_run_exactly_once():
    recorder = Recorder(delay=0.01, result=False)
    stats = await TrafficScheduler(LoadProfile.shared(iterations=7, actors=3), recorder).run()

    assert sorted(number for _, number in recorder.calls) == list(range(7))
    assert {slot for slot, _ in recorder.calls} <= {0, 1, 2}
    assert stats.completed == 7
    assert stats.outcomes == {"failed": 7}
    assert stats.peak_active == 3


async def test_max_duration_cancels_running_iterations():
    profile = LoadProfile.per_actor(iterations=1, actors=2, max_duration=0.1)
    scheduler = TrafficScheduler(profile, Recorder(delay=10), tick=0.02)

    stats = await asyncio.wait_for(scheduler.run(), timeout=5)

    assert stats.started == 2
    assert stats.completed == 0
    assert stats.interrupted == 2


async def test_iteration_exceptions_are_counted():
    async def explode(slot, number):
        raise ValueError("bad payload")

    metrics = MetricsRegistry()
    stats = await TrafficScheduler(LoadProfile.per_actor(iterations=2), explode, metrics).run()

    assert stats.failed == 2
    assert stats.completed == 0
    assert metrics.errors == {"Unhandled: ValueError": 2}


async def test_ramping_actors():
    profile = LoadProfile.ramping([(0.3, 3), (0.2, 0)])
    recorder = Recorder(delay=0.02)
    scheduler = TrafficScheduler(profile, recorder, tick=0.02)

    stats = await asyncio.wait_for(scheduler.run(), timeout=5)

    assert stats.completed > 0
    assert stats.interrupted == 0
    assert 1 <= stats.peak_active <= 3
    assert {slot for slot, _ in recorder.calls} <= {0, 1, 2}
    assert scheduler.target == 0
