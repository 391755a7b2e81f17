"""
Traffic Scheduler
=================
Decides how many actors run and for how long:

- ``per-actor-iterations``: each actor runs a fixed number of iterations
  (sanity validation).
- ``shared-iterations``: a bounded pool of actors drains a shared iteration
  budget, producing an exact number of completed workflows.
- ``ramping-actors``: the actor count follows a list of ``(duration, target)``
  stages, interpolated linearly inside each stage.

Iterations still running when the time budget is exhausted are cancelled
without cleanup.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple, Callable, Awaitable, Sequence

from rich.live import Live

from hyp_loadtest.config import parse_duration
from hyp_loadtest.errors import ConfigurationError
from hyp_loadtest.metrics import MetricsRegistry

logger = logging.getLogger(__name__)

# (slot, iteration) -> outcome; the outcome is only counted, never inspected
IterationFn = Callable[[int, int], Awaitable[Any]]


class ExecutorKind(Enum):
    PER_ACTOR_ITERATIONS = "per-actor-iterations"
    SHARED_ITERATIONS = "shared-iterations"
    RAMPING_ACTORS = "ramping-actors"


@dataclass(frozen=True)
class Stage:
    duration: float  # seconds
    target: int

    @classmethod
    def of(cls, duration: Any, target: int) -> "Stage":
        """``Stage.of("2m", 50)``"""
        return cls(parse_duration(duration), target)


@dataclass(frozen=True)
class LoadProfile:
    """Concurrency profile for one run."""
    executor: ExecutorKind
    actors: int = 1
    iterations: int = 1
    max_duration: Optional[float] = None
    stages: Tuple[Stage, ...] = ()
    start_actors: int = 0
    # Time actors get to finish after the last ramping stage
    graceful_stop: float = 30.0

    @classmethod
    def per_actor(cls, iterations: int, actors: int = 1, max_duration: Any = "10m") -> "LoadProfile":
        return cls(ExecutorKind.PER_ACTOR_ITERATIONS, actors=actors, iterations=iterations,
                   max_duration=parse_duration(max_duration))

    @classmethod
    def shared(cls, iterations: int, actors: int = 1, max_duration: Any = "10m") -> "LoadProfile":
        return cls(ExecutorKind.SHARED_ITERATIONS, actors=actors, iterations=iterations,
                   max_duration=parse_duration(max_duration))

    @classmethod
    def ramping(cls, stages: Sequence[Tuple[Any, int]], start_actors: int = 0) -> "LoadProfile":
        if not stages:
            raise ConfigurationError("A ramping profile needs at least one stage")
        return cls(ExecutorKind.RAMPING_ACTORS,
                   stages=tuple(Stage.of(d, t) for d, t in stages),
                   start_actors=start_actors)

    @property
    def total_duration(self) -> float:
        if self.executor == ExecutorKind.RAMPING_ACTORS:
            return sum(s.duration for s in self.stages)
        return self.max_duration or 0

    @property
    def peak_actors(self) -> int:
        if self.executor == ExecutorKind.RAMPING_ACTORS:
            return max([self.start_actors] + [s.target for s in self.stages])
        return self.actors

    def target_at(self, elapsed: float) -> int:
        """Actor count at ``elapsed`` seconds into a ramping profile."""
        if self.executor != ExecutorKind.RAMPING_ACTORS:
            return self.actors

        previous = self.start_actors
        stage_start = 0.0
        for stage in self.stages:
            stage_end = stage_start + stage.duration
            if elapsed < stage_end:
                if stage.duration <= 0:
                    return stage.target
                progress = (elapsed - stage_start) / stage.duration
                return int(round(previous + (stage.target - previous) * progress))
            previous = stage.target
            stage_start = stage_end
        return previous

    def capped(self, max_actors: Optional[int]) -> "LoadProfile":
        """Clamp every actor target to ``max_actors``."""
        if max_actors is None:
            return self
        return LoadProfile(
            executor=self.executor,
            actors=min(self.actors, max_actors),
            iterations=self.iterations,
            max_duration=self.max_duration,
            stages=tuple(Stage(s.duration, min(s.target, max_actors)) for s in self.stages),
            start_actors=min(self.start_actors, max_actors),
            graceful_stop=self.graceful_stop,
        )

    def describe(self) -> str:
        if self.executor == ExecutorKind.RAMPING_ACTORS:
            pattern = " -> ".join(str(t) for t in [self.start_actors] + [s.target for s in self.stages])
            return f"Ramping actors: {pattern} over {self.total_duration:.0f}s"
        return (f"{self.executor.value}: {self.actors} actor(s), {self.iterations} iteration(s), "
                f"max {self.max_duration:.0f}s")


class WeightedChoice:
    """Static weighted selection between journeys."""

    def __init__(self, options: Sequence[Tuple[Any, float]]):
        if not options:
            raise ConfigurationError("WeightedChoice needs at least one option")
        total = sum(weight for _, weight in options)
        if total <= 0:
            raise ConfigurationError("Weights must sum to a positive number")
        self.options: List[Tuple[Any, float]] = [(value, weight / total) for value, weight in options]

    def pick(self, r: Optional[float] = None) -> Any:
        r = random.random() if r is None else r
        cumulative = 0.0
        for value, probability in self.options:
            cumulative += probability
            if r < cumulative:
                return value
        return self.options[-1][0]


@dataclass
class SchedulerStats:
    started: int = 0
    completed: int = 0
    failed: int = 0
    interrupted: int = 0
    active: int = 0
    peak_active: int = 0
    outcomes: Dict[str, int] = field(default_factory=dict)


class TrafficScheduler:
    """Runs ``iteration`` under a :class:`LoadProfile`."""

    def __init__(
        self,
        profile: LoadProfile,
        iteration: IterationFn,
        metrics: Optional[MetricsRegistry] = None,
        live: bool = False,
        tick: float = 0.5,
        table_factory: Optional[Callable[["TrafficScheduler"], Any]] = None,
    ):
        self.profile = profile
        self.iteration = iteration
        self.metrics = metrics
        self.live = live
        self.tick = tick
        self.table_factory = table_factory
        self.stats = SchedulerStats()
        self.target = 0
        self._start = 0.0
        self._next_shared = 0

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start if self._start else 0.0

    async def _run_iteration(self, slot: int, number: int):
        self.stats.started += 1
        self.stats.active += 1
        self.stats.peak_active = max(self.stats.peak_active, self.stats.active)
        try:
            outcome = await self.iteration(slot, number)
            self.stats.completed += 1
            key = "passed" if outcome else "failed"
            self.stats.outcomes[key] = self.stats.outcomes.get(key, 0) + 1
        except asyncio.CancelledError:
            self.stats.interrupted += 1
            raise
        except Exception as e:
            self.stats.failed += 1
            logger.exception("Iteration %d on actor %d raised", number, slot)
            if self.metrics is not None:
                self.metrics.errors[f"Unhandled: {type(e).__name__}"[:50]] += 1
        finally:
            self.stats.active -= 1

    # =========================================================================
    # Executors
    # =========================================================================

    async def _per_actor(self, slot: int):
        for number in range(self.profile.iterations):
            await self._run_iteration(slot, number)

    async def _shared(self, slot: int):
        while self._next_shared < self.profile.iterations:
            number = self._next_shared
            self._next_shared += 1
            await self._run_iteration(slot, number)

    async def _ramping_actor(self, slot: int, stop_at: float):
        number = 0
        while slot < self.target and time.monotonic() < stop_at:
            await self._run_iteration(slot, number)
            number += 1

    async def _run_iterations(self, worker: Callable[[int], Awaitable[None]], refresh: Callable[[], None]):
        self.target = self.profile.actors
        tasks = [asyncio.create_task(worker(slot)) for slot in range(self.profile.actors)]
        deadline = time.monotonic() + (self.profile.max_duration or float("inf"))

        pending = set(tasks)
        while pending:
            timeout = min(self.tick, max(0.0, deadline - time.monotonic()))
            _, pending = await asyncio.wait(pending, timeout=timeout)
            refresh()
            if pending and time.monotonic() >= deadline:
                logger.warning("Max duration %.0fs reached, abandoning %d running actor(s)",
                               self.profile.max_duration, len(pending))
                await self._cancel(pending)
                break

        for task in tasks:
            if task.done() and not task.cancelled() and task.exception():
                raise task.exception()

    async def _run_ramping(self, refresh: Callable[[], None]):
        ramp_end = time.monotonic() + self.profile.total_duration
        hard_stop = ramp_end + self.profile.graceful_stop
        actors: Dict[int, asyncio.Task] = {}

        while time.monotonic() < ramp_end:
            self.target = self.profile.target_at(self.elapsed)
            for slot in range(self.target):
                task = actors.get(slot)
                if task is None or task.done():
                    actors[slot] = asyncio.create_task(self._ramping_actor(slot, ramp_end))
            refresh()
            await asyncio.sleep(min(self.tick, max(0.0, ramp_end - time.monotonic())))

        self.target = 0
        pending = {t for t in actors.values() if not t.done()}
        if pending:
            _, pending = await asyncio.wait(pending, timeout=max(0.0, hard_stop - time.monotonic()))
        if pending:
            logger.warning("Graceful stop elapsed, abandoning %d running actor(s)", len(pending))
            await self._cancel(pending)
        refresh()

    @staticmethod
    async def _cancel(tasks):
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def run(self) -> SchedulerStats:
        self._start = time.monotonic()
        self._next_shared = 0
        logger.info("Starting %s", self.profile.describe())

        async def execute(refresh: Callable[[], None]):
            if self.profile.executor == ExecutorKind.PER_ACTOR_ITERATIONS:
                await self._run_iterations(self._per_actor, refresh)
            elif self.profile.executor == ExecutorKind.SHARED_ITERATIONS:
                await self._run_iterations(self._shared, refresh)
            else:
                await self._run_ramping(refresh)

        if self.live and self.table_factory is not None:
            with Live(self.table_factory(self), refresh_per_second=2) as live:
                await execute(lambda: live.update(self.table_factory(self)))
        else:
            await execute(lambda: None)

        if self.metrics is not None:
            self.metrics.stop()
        logger.info("Finished: %d iteration(s) completed, %d interrupted, %d raised",
                    self.stats.completed, self.stats.interrupted, self.stats.failed)
        return self.stats
