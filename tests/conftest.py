import pytest

from hyp_loadtest.client import ApiClient
from hyp_loadtest.config import LoadTestConfig
from hyp_loadtest.context import RunContext
from hyp_loadtest.menu import RestaurantInfo
from hyp_loadtest.metrics import MetricsRegistry
from hyp_loadtest.payloads import generate_actor_pool

from tests.fake_backend import FakeBackend


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def backend_url(aiohttp_server, backend):
    server = await aiohttp_server(backend.app())
    return str(server.make_url("/"))


@pytest.fixture
def config(backend_url):
    return LoadTestConfig(
        base_url=backend_url,
        restaurant_id="324672",
        customer_id="501",
        think_time_scale=0,
        poll_interval=0.01,
        poll_timeout=0.1,
    )


@pytest.fixture
async def ctx(config):
    metrics = MetricsRegistry()
    async with ApiClient(config.base_url, headers=config.headers(), metrics=metrics) as client:
        yield RunContext(
            config=config,
            client=client,
            metrics=metrics,
            actors=generate_actor_pool(3),
            restaurant=RestaurantInfo(id="324672", menu_sharing_code="ms-1"),
        )
