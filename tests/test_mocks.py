import pytest

from hyp_loadtest.mocks import delivery, payment, pos, push, sms, whatsapp
from hyp_loadtest.mocks.base import STATS, response_delay
from hyp_loadtest.mocks.server import MOCKS, start_mocks


@pytest.fixture
def mock_client(aiohttp_client):
    async def make(module):
        return await aiohttp_client(module.create_app(delay_ms=0))
    return make


@pytest.mark.parametrize("module", [delivery, payment, pos, push, sms, whatsapp])
async def test_health(mock_client, module):
    client = await mock_client(module)
    res = await client.get("/health")
    assert res.status == 200
    body = await res.json()
    assert body["status"] == "healthy"
    assert body["service"] == module.SERVICE


async def test_unknown_routes_answer_ok(mock_client):
    client = await mock_client(push)
    res = await client.post("/anything/at/all", json={})
    assert res.status == 200
    assert await res.json() == {"success": True, "mock": True, "path": "/anything/at/all"}
    assert client.app[STATS].requests == 1


async def test_delivery_fallback_names_method(mock_client):
    client = await mock_client(delivery)
    res = await client.delete("/v2/unknown")
    body = await res.json()
    assert body["method"] == "DELETE"
    assert body["message"].startswith("Mock endpoint")


def test_response_delay_from_environment(monkeypatch):
    monkeypatch.setenv("RESPONSE_DELAY_MS", "250")
    assert response_delay(50) == 250
    monkeypatch.setenv("RESPONSE_DELAY_MS", "fast")
    assert response_delay(50) == 50
    monkeypatch.delenv("RESPONSE_DELAY_MS")
    assert payment.create_app()[STATS].delay_ms == payment.DEFAULT_DELAY_MS


# =============================================================================
# Services
# =============================================================================

async def test_pidge_vendor_order_keys_by_source_order(mock_client):
    client = await mock_client(delivery)

    res = await client.post("/v1.0/store/channel/vendor/order", json={
        "trips": [{"source_order_id": "9001"}, {"source_order_id": "9002"}],
    })
    data = (await res.json())["data"]
    assert set(data) == {"9001", "9002"}

    res = await client.post("/v1.0/store/channel/vendor/order", json={})
    assert set((await res.json())["data"]) == {"default"}


async def test_pidge_quote_lists_networks(mock_client):
    client = await mock_client(delivery)
    res = await client.post("/v1.0/store/channel/vendor/quote", json={"drop": [{"ref": "R1"}]})
    data = (await res.json())["data"]

    assert data["distance"][0]["ref"] == "R1"
    assert [item["network_name"] for item in data["items"]][:2] == ["wefast", "porter"]
    assert all(item["quote"]["price"] > 0 for item in data["items"])


async def test_razorpay_order(mock_client):
    client = await mock_client(payment)
    res = await client.post("/v1/orders", json={"amount": 23060, "receipt": "r-1"})
    body = await res.json()

    assert body["id"].startswith("order_")
    assert body["amount"] == body["amount_due"] == 23060
    assert body["receipt"] == "r-1"
    assert body["status"] == "created"


async def test_razorpay_refund(mock_client):
    client = await mock_client(payment)
    res = await client.post("/v1/payments/pay_1/refund", json={})
    body = await res.json()
    assert body["payment_id"] == "pay_1"
    assert body["id"].startswith("rfnd_")


async def test_sms_otp_round_trip(mock_client):
    client = await mock_client(sms)

    res = await client.get("/API/V1/key/SMS/9800000001/123456")
    body = await res.json()
    assert body["Status"] == "Success"
    assert body["OTP"] == "123456"

    ok = await (await client.get("/API/V1/key/VERIFY/9800000001/123456")).json()
    assert ok["Details"] == "OTP Matched"

    wrong = await (await client.get("/API/V1/key/VERIFY/9800000001/000000")).json()
    assert wrong == {"Status": "Error", "Details": "OTP Mismatch"}

    stats = await (await client.get("/stats")).json()
    assert stats["otpStoreSize"] == 1
    assert stats["requests"] == 3

    await client.post("/reset")
    stats = await (await client.get("/stats")).json()
    assert stats == {"requests": 0, "otpStoreSize": 0, "uptime": stats["uptime"]}


async def test_sms_session_verify_is_not_a_mobile(mock_client):
    client = await mock_client(sms)
    body = await (await client.get("/API/V1/key/SMS/VERIFY/session-1/123456")).json()
    assert body["Details"] == "OTP Matched"
    assert not client.app[sms.OTP_STORE].entries


def test_otp_store_expiry():
    store = sms.OtpStore(ttl=60)
    store.issue("9800000001", "111111", now=1000)
    store.issue("9800000002", "222222", now=1100)

    assert "9800000001" not in store.entries
    assert store.verify("9800000002", "222222")
    assert not store.verify("9800000002", "333333")


async def test_onesignal_notification(mock_client):
    client = await mock_client(push)
    body = await (await client.post("/notifications", json={"include_player_ids": ["a", "b"]})).json()
    assert body["recipients"] == 2


async def test_whatsapp_message(mock_client):
    client = await mock_client(whatsapp)
    body = await (await client.post("/v20.0/123/messages", json={"to": "919800000001"})).json()
    assert body["contacts"] == [{"wa_id": "919800000001"}]
    assert body["messages"][0]["id"].startswith("wamid.")


async def test_petpooja_push_order(mock_client):
    client = await mock_client(pos)
    body = await (await client.post("/order/push", json={"order_id": "9001"})).json()
    assert body["order_id"] == "9001"
    assert body["pos_order_id"].startswith("POS-")


async def test_start_mocks(unused_tcp_port_factory):
    base = unused_tcp_port_factory()
    runners = await start_mocks(["payment"], delay_ms=0, port_offset=base - MOCKS["payment"][1])
    try:
        assert len(runners) == 1
        assert runners[0].app[STATS].service == payment.SERVICE
    finally:
        for runner in runners:
            await runner.cleanup()
