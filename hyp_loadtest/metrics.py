"""
Metrics Sink
============
Trend, rate and counter series accumulated during a run, plus threshold
evaluation using the familiar ``p(95)<2000`` / ``rate>0.95`` expressions.

All series live in a :class:`MetricsRegistry` created once per run. Actors
share it; the event loop is single-threaded so plain increments are safe.
"""

import re
import statistics
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Iterable

from hyp_loadtest.errors import ThresholdSyntaxError


def _percentile(values: List[float], pct: float) -> float:
    if not values:
        return 0
    sorted_values = sorted(values)
    idx = int(len(sorted_values) * pct / 100)
    return sorted_values[min(idx, len(sorted_values) - 1)]


@dataclass
class Trend:
    """Series of durations in milliseconds."""
    name: str
    values: List[float] = field(default_factory=list)

    def add(self, value: float):
        self.values.append(float(value))

    @property
    def count(self) -> int:
        return len(self.values)

    @property
    def avg(self) -> float:
        return statistics.mean(self.values) if self.values else 0

    @property
    def min(self) -> float:
        return min(self.values) if self.values else 0

    @property
    def max(self) -> float:
        return max(self.values) if self.values else 0

    @property
    def med(self) -> float:
        return statistics.median(self.values) if self.values else 0

    def percentile(self, pct: float) -> float:
        return _percentile(self.values, pct)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "avg": round(self.avg, 2),
            "min": round(self.min, 2),
            "med": round(self.med, 2),
            "max": round(self.max, 2),
            "p90": round(self.percentile(90), 2),
            "p95": round(self.percentile(95), 2),
            "p99": round(self.percentile(99), 2),
        }


@dataclass
class Rate:
    """Fraction of truthy samples."""
    name: str
    passes: int = 0
    total: int = 0

    def add(self, passed: bool):
        self.total += 1
        if passed:
            self.passes += 1

    @property
    def fails(self) -> int:
        return self.total - self.passes

    @property
    def rate(self) -> float:
        return self.passes / self.total if self.total else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rate": round(self.rate, 4),
            "passes": self.passes,
            "fails": self.fails,
        }


@dataclass
class Counter:
    name: str
    value: float = 0

    def add(self, amount: float = 1):
        self.value += amount

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.value}


# =============================================================================
# THRESHOLDS
# =============================================================================

_THRESHOLD_RE = re.compile(
    r"^\s*(?P<agg>avg|min|max|med|count|rate|p\((?P<pct>\d+(?:\.\d+)?)\))"
    r"\s*(?P<op><=|>=|==|<|>)\s*(?P<target>-?\d+(?:\.\d+)?)\s*$"
)

_OPERATORS = {
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "==": lambda a, b: a == b,
}


@dataclass(frozen=True)
class Threshold:
    """One parsed threshold expression."""
    expression: str
    aggregation: str
    operator: str
    target: float
    percentile: Optional[float] = None

    @classmethod
    def parse(cls, expression: str) -> "Threshold":
        match = _THRESHOLD_RE.match(expression)
        if not match:
            raise ThresholdSyntaxError(f"Cannot parse threshold {expression!r}")
        agg = match.group("agg")
        pct = match.group("pct")
        return cls(
            expression=expression.strip(),
            aggregation="p" if pct else agg,
            operator=match.group("op"),
            target=float(match.group("target")),
            percentile=float(pct) if pct else None,
        )

    def check(self, observed: float) -> bool:
        return _OPERATORS[self.operator](observed, self.target)


@dataclass
class ThresholdResult:
    metric: str
    expression: str
    observed: Optional[float]
    passed: bool

    @property
    def skipped(self) -> bool:
        return self.observed is None


class MetricsRegistry:
    """All series recorded during one run."""

    def __init__(self):
        self.trends: Dict[str, Trend] = {}
        self.rates: Dict[str, Rate] = {}
        self.counters: Dict[str, Counter] = {}
        self.check_results: Dict[str, Rate] = {}
        self.status_codes: Dict[int, int] = defaultdict(int)
        self.errors: Dict[str, int] = defaultdict(int)
        self.start_time: float = time.time()
        self.end_time: float = 0

    def trend(self, name: str) -> Trend:
        if name not in self.trends:
            self.trends[name] = Trend(name)
        return self.trends[name]

    def rate(self, name: str) -> Rate:
        if name not in self.rates:
            self.rates[name] = Rate(name)
        return self.rates[name]

    def counter(self, name: str) -> Counter:
        if name not in self.counters:
            self.counters[name] = Counter(name)
        return self.counters[name]

    def check(self, name: str, passed: bool) -> bool:
        """Record a named assertion into the global ``checks`` rate."""
        self.rate("checks").add(passed)
        if name not in self.check_results:
            self.check_results[name] = Rate(name)
        self.check_results[name].add(passed)
        return passed

    def record_http(self, name: str, status: int, latency_ms: float, error: Optional[str] = None):
        """Record one HTTP exchange under the global and per-endpoint series."""
        failed = status == 0 or status >= 400
        self.trend("http_req_duration").add(latency_ms)
        self.trend(f"http_req_duration{{name:{name}}}").add(latency_ms)
        self.rate("http_req_failed").add(failed)
        self.counter("http_reqs").add(1)
        self.status_codes[status] += 1
        if error:
            self.errors[error[:50]] += 1

    def stop(self):
        self.end_time = time.time()

    @property
    def duration(self) -> float:
        return (self.end_time or time.time()) - self.start_time

    @property
    def http_reqs(self) -> int:
        counter = self.counters.get("http_reqs")
        return int(counter.value) if counter else 0

    @property
    def rps(self) -> float:
        return self.http_reqs / self.duration if self.duration > 0 else 0

    # =========================================================================
    # Threshold evaluation
    # =========================================================================

    def _observe(self, metric: str, threshold: Threshold) -> Optional[float]:
        agg = threshold.aggregation

        if metric in self.trends:
            trend = self.trends[metric]
            if not trend.count:
                return None
            if agg == "p":
                return trend.percentile(threshold.percentile)
            if agg in ("avg", "min", "max", "med", "count"):
                return getattr(trend, agg)
            raise ThresholdSyntaxError(f"{threshold.expression!r} does not apply to trend {metric}")

        if metric in self.rates:
            rate = self.rates[metric]
            if not rate.total:
                return None
            if agg == "rate":
                return rate.rate
            raise ThresholdSyntaxError(f"{threshold.expression!r} does not apply to rate {metric}")

        if metric in self.counters:
            counter = self.counters[metric]
            if agg == "count":
                return counter.value
            if agg == "rate":
                return counter.value / self.duration if self.duration > 0 else 0
            raise ThresholdSyntaxError(f"{threshold.expression!r} does not apply to counter {metric}")

        return None

    def evaluate(self, thresholds: Dict[str, Iterable[str]]) -> List[ThresholdResult]:
        """
        Evaluate every threshold. Metrics that never received a sample are
        reported with ``observed=None`` and do not fail the run.
        """
        results = []
        for metric, expressions in thresholds.items():
            for expression in expressions:
                threshold = Threshold.parse(expression)
                observed = self._observe(metric, threshold)
                passed = True if observed is None else threshold.check(observed)
                results.append(ThresholdResult(metric, threshold.expression, observed, passed))
        return results

    def to_dict(self) -> Dict[str, Any]:
        """Convert all series to a dictionary for JSON export."""
        return {
            "duration_seconds": round(self.duration, 2),
            "http_reqs": self.http_reqs,
            "requests_per_second": round(self.rps, 2),
            "trends": {name: t.to_dict() for name, t in sorted(self.trends.items())},
            "rates": {name: r.to_dict() for name, r in sorted(self.rates.items())},
            "counters": {name: c.to_dict() for name, c in sorted(self.counters.items())},
            "checks": {name: r.to_dict() for name, r in sorted(self.check_results.items())},
            "status_codes": dict(self.status_codes),
            "errors": dict(self.errors),
        }
