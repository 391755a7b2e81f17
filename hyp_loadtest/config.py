"""
Run Configuration
=================
Settings for a load-test run, read from the environment and overridden by
CLI flags.

Environment:
    BASE_URL, RESTAURANT_ID, CUSTOMER_ID, USER_MODE, USER_COUNT,
    ORDER_COUNT, LOAD_TEST_OTP, REQUEST_TIMEOUT
"""

import os
from dataclasses import dataclass, fields, replace
from typing import Optional, Dict, Mapping, Any

from hyp_loadtest.errors import ConfigurationError

DEFAULT_BASE_URL = "http://localhost:8080/api/v2"

# Fixed OTP accepted by the backend when it runs in load-test mode
LOAD_TEST_OTP = 123456

USER_MODES = ("single", "multi", "sanity")


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def parse_duration(raw: str) -> float:
    """Parse '30s', '2m', '1h' or a bare number of seconds."""
    text = str(raw).strip().lower()
    units = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}
    for suffix in ("ms", "s", "m", "h"):
        if text.endswith(suffix):
            number = text[: -len(suffix)]
            try:
                return float(number) * units[suffix]
            except ValueError:
                break
    try:
        return float(text)
    except ValueError:
        raise ConfigurationError(f"Invalid duration: {raw!r}")


@dataclass
class LoadTestConfig:
    """Settings shared by every actor of one run."""
    base_url: str = DEFAULT_BASE_URL
    restaurant_id: str = ""
    customer_id: str = ""
    user_mode: str = "single"
    user_count: int = 1000
    order_count: int = 1000
    otp: int = LOAD_TEST_OTP
    request_timeout: float = 30.0
    verify_ssl: bool = True

    # Multiplier applied to think-time sleeps; 0 disables them
    think_time_scale: float = 1.0

    # Bounded status polling after asynchronous transitions
    poll_interval: float = 0.5
    poll_timeout: float = 10.0

    # Caps ramping profiles; None uses the scenario's own targets
    max_actors: Optional[int] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LoadTestConfig":
        env = os.environ if environ is None else environ
        config = cls()

        if env.get("BASE_URL"):
            config.base_url = env["BASE_URL"]
        config.restaurant_id = env.get("RESTAURANT_ID", "")
        config.customer_id = env.get("CUSTOMER_ID", "")
        if env.get("USER_MODE"):
            config.user_mode = env["USER_MODE"]
        if env.get("USER_COUNT"):
            config.user_count = _parse_int("USER_COUNT", env["USER_COUNT"])
        if env.get("ORDER_COUNT"):
            config.order_count = _parse_int("ORDER_COUNT", env["ORDER_COUNT"])
        if env.get("LOAD_TEST_OTP"):
            config.otp = _parse_int("LOAD_TEST_OTP", env["LOAD_TEST_OTP"])
        if env.get("REQUEST_TIMEOUT"):
            config.request_timeout = parse_duration(env["REQUEST_TIMEOUT"])

        config.validate()
        return config

    def with_overrides(self, **overrides: Any) -> "LoadTestConfig":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

        updated = replace(self, **{k: v for k, v in overrides.items() if v is not None})
        updated.validate()
        return updated

    def validate(self):
        if self.user_mode not in USER_MODES:
            raise ConfigurationError(
                f"USER_MODE must be one of {', '.join(USER_MODES)}, got {self.user_mode!r}"
            )
        if self.user_count < 1:
            raise ConfigurationError("USER_COUNT must be at least 1")
        if self.order_count < 1:
            raise ConfigurationError("ORDER_COUNT must be at least 1")
        if self.request_timeout <= 0:
            raise ConfigurationError("REQUEST_TIMEOUT must be positive")
        if self.poll_interval <= 0 or self.poll_timeout < 0:
            raise ConfigurationError("Poll interval must be positive and timeout non-negative")
        if self.max_actors is not None and self.max_actors < 1:
            raise ConfigurationError("max_actors must be at least 1")

    @property
    def is_sanity(self) -> bool:
        return self.user_mode == "sanity"

    @property
    def is_multi(self) -> bool:
        return self.user_mode == "multi"

    def headers(self) -> Dict[str, str]:
        """Standard request headers; the backend needs no auth in load mode."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.restaurant_id:
            headers["X-Restaurant-Id"] = str(self.restaurant_id)
        return headers
