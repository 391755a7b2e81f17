import pytest

from hyp_loadtest.client import ApiClient, endpoint_name, normalize_endpoint
from hyp_loadtest.metrics import MetricsRegistry


@pytest.mark.parametrize("path, expected", [
    ("/order/12345", "/order/:id"),
    ("/payment/verify/9001", "/payment/verify/:id"),
    ("/order/track/5f1b2c3d4e5f6a7b8c9d0e1f", "/order/track/:uuid"),
    ("/menu/category?restaurantId=324672", "/menu/category"),
    ("/addon-group", "/addon-group"),
])
def test_normalize_endpoint(path, expected):
    assert normalize_endpoint(path) == expected


def test_endpoint_name():
    assert endpoint_name("POST", "/payment/9001") == "post_/payment/:id"


async def test_requests_are_recorded(backend, backend_url):
    metrics = MetricsRegistry()
    async with ApiClient(backend_url, metrics=metrics) as client:
        res = await client.post("/login/verify-otp", {"mobile": "9800000001"})
        missing = await client.get("/order/1")

    assert res.ok and res.is_json
    assert res.body == {"data": [{"id": "cust-9800000001"}]}
    assert missing.status == 404
    assert metrics.http_reqs == 2
    assert metrics.status_codes == {200: 1, 404: 1}
    assert "http_req_duration{name:get_/order/:id}" in metrics.trends
    assert backend.paths() == ["POST /login/verify-otp", "GET /order/1"]


async def test_non_json_body(backend, backend_url):
    backend.override("GET", "/order/{order_id}", 502, "Bad Gateway")
    async with ApiClient(backend_url) as client:
        res = await client.get("/order/1")

    assert res.status == 502
    assert res.text == "Bad Gateway"
    assert not res.is_json


async def test_connection_error_is_status_zero(unused_tcp_port):
    metrics = MetricsRegistry()
    async with ApiClient(f"http://127.0.0.1:{unused_tcp_port}", timeout=2, metrics=metrics) as client:
        res = await client.get("/restaurant")

    assert res.status == 0
    assert res.error.startswith("ConnectionError")
    assert metrics.rates["http_req_failed"].rate == 1
    assert metrics.errors


async def test_request_outside_context():
    client = ApiClient("http://127.0.0.1:1")
    with pytest.raises(RuntimeError):
        await client.get("/restaurant")
