"""Run-scoped state handed to every actor execution."""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Optional, Tuple

from hyp_loadtest.client import ApiClient
from hyp_loadtest.config import LoadTestConfig
from hyp_loadtest.menu import MenuSnapshot, RestaurantInfo
from hyp_loadtest.metrics import MetricsRegistry
from hyp_loadtest.payloads import Actor, actor_for_slot, generate_actor_pool


@dataclass
class RunContext:
    """
    Everything an actor needs, built once per run and passed explicitly.

    Only ``metrics`` is written to during the run; the rest is read-only.
    """
    config: LoadTestConfig
    client: ApiClient
    metrics: MetricsRegistry
    actors: Tuple[Actor, ...] = ()
    menu: Optional[MenuSnapshot] = None
    restaurant: RestaurantInfo = field(default_factory=RestaurantInfo)
    trackable_order_ids: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.actors:
            self.actors = generate_actor_pool(1 if self.config.is_sanity else self.config.user_count)

    @property
    def restaurant_id(self) -> str:
        return self.config.restaurant_id

    def actor_for(self, slot: int) -> Actor:
        return actor_for_slot(self.actors, slot)

    async def think(self, min_ms: float, max_ms: float):
        """Simulate user think time, scaled by ``config.think_time_scale``."""
        scale = self.config.think_time_scale
        if scale <= 0:
            return
        await asyncio.sleep(random.uniform(min_ms, max_ms) / 1000 * scale)
