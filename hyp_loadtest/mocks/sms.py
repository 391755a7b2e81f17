"""
SMS / OTP (2Factor) API Mock
============================
Mirrors the 2factor.in URL scheme (``/API/V1/{key}/SMS/{mobile}/{otp}``).
Issued OTPs are kept per mobile for ten minutes so the backend's verify
call can be checked against them.
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Optional, Dict

from aiohttp import web

from hyp_loadtest.mocks.base import STATS, create_mock_app, mocked

logger = logging.getLogger(__name__)

SERVICE = "mock-sms-2factor"
DEFAULT_PORT = 8086
DEFAULT_DELAY_MS = 50

OTP_TTL_SECONDS = 10 * 60

routes = web.RouteTableDef()


@dataclass
class IssuedOtp:
    otp: str
    issued_at: float
    verified: bool = False


@dataclass
class OtpStore:
    ttl: float = OTP_TTL_SECONDS
    entries: Dict[str, IssuedOtp] = field(default_factory=dict)

    def issue(self, mobile: str, otp: str, now: Optional[float] = None):
        now = time.time() if now is None else now
        self.entries[mobile] = IssuedOtp(otp, now)
        self.expire(now)

    def expire(self, now: Optional[float] = None):
        cutoff = (time.time() if now is None else now) - self.ttl
        for mobile in [m for m, e in self.entries.items() if e.issued_at < cutoff]:
            del self.entries[mobile]

    def verify(self, mobile: str, otp: str) -> bool:
        entry = self.entries.get(mobile)
        if entry is None or entry.otp != otp:
            return False
        entry.verified = True
        return True

    def clear(self):
        self.entries.clear()


OTP_STORE = web.AppKey("otp_store", OtpStore)


def _success(details: str, **extra: str) -> web.Response:
    return web.json_response({"Status": "Success", "Details": details, **extra})


# VERIFY routes go first so "VERIFY" is never taken for a mobile number
@routes.get("/API/V1/{key}/SMS/VERIFY/{session_id}/{otp}")
@mocked()
async def verify_session(request: web.Request) -> web.Response:
    return _success("OTP Matched")


@routes.get("/API/V1/{key}/VERIFY/{mobile}/{otp}")
@mocked()
async def verify_mobile(request: web.Request) -> web.Response:
    store = request.app[OTP_STORE]
    if store.verify(request.match_info["mobile"], request.match_info["otp"]):
        return _success("OTP Matched")
    return web.json_response({"Status": "Error", "Details": "OTP Mismatch"})


@routes.get("/API/V1/{key}/SMS/{mobile}/{otp}")
@mocked()
async def send_otp(request: web.Request) -> web.Response:
    mobile = request.match_info["mobile"]
    otp = request.match_info["otp"]
    request.app[OTP_STORE].issue(mobile, otp)
    logger.info("OTP sent to %s: %s", mobile[-4:], otp)
    return _success(secrets.token_hex(16), OTP=otp)


@routes.get("/API/V1/{key}/BAL/{type}")
@mocked()
async def balance(request: web.Request) -> web.Response:
    return _success("10000")


@routes.get("/API/V1/{key}/ADDON_SERVICES/SEND/TSMS")
@mocked()
async def transactional_sms(request: web.Request) -> web.Response:
    return _success(secrets.token_hex(16))


@routes.get("/stats")
async def stats(request: web.Request) -> web.Response:
    app_stats = request.app[STATS]
    return web.json_response({
        "requests": app_stats.requests,
        "otpStoreSize": len(request.app[OTP_STORE].entries),
        "uptime": app_stats.uptime,
    })


@routes.post("/reset")
async def reset(request: web.Request) -> web.Response:
    request.app[STATS].requests = 0
    request.app[OTP_STORE].clear()
    return web.json_response({"message": "Stats reset"})


@routes.route("*", "/API/{tail:.*}")
@mocked()
async def other_api(request: web.Request) -> web.Response:
    return _success("Mock response")


def create_app(delay_ms: Optional[float] = None) -> web.Application:
    app = create_mock_app(SERVICE, routes, DEFAULT_DELAY_MS, delay_ms)
    app[OTP_STORE] = OtpStore()
    return app
