"""
Run Report
==========
Console rendering (live table during the run, summary panel at the end)
and JSON export of everything in the :class:`MetricsRegistry`.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hyp_loadtest.metrics import MetricsRegistry, ThresholdResult

console = Console()

# Trend columns shown in the summary, in display order
_SUMMARY_TRENDS = [
    "http_req_duration",
    "menu_browse_duration",
    "login_duration",
    "order_duration",
    "payment_create_duration",
    "payment_verify_duration",
    "pos_duration",
    "delivery_duration",
    "tracking_duration",
    "total_lifecycle_duration",
]


def create_live_table(scheduler) -> Table:
    """Live metrics table refreshed by the scheduler."""
    m: Optional[MetricsRegistry] = scheduler.metrics
    stats = scheduler.stats

    table = Table(title="🍔 HYP Load Test", expand=True)
    table.add_column("Metric", style="cyan", width=25)
    table.add_column("Value", style="green", width=15)
    table.add_column("Metric", style="cyan", width=25)
    table.add_column("Value", style="green", width=15)

    table.add_row(
        "Elapsed", f"{scheduler.elapsed:.1f}s",
        "Target Actors", f"{scheduler.target:,}",
    )
    table.add_row(
        "Active Iterations", f"{stats.active:,}",
        "Peak Active", f"{stats.peak_active:,}",
    )
    table.add_row(
        "Completed", f"[green]{stats.completed:,}[/green]",
        "Interrupted", f"[yellow]{stats.interrupted:,}[/yellow]",
    )

    if m is not None:
        failed = m.rates.get("http_req_failed")
        latency = m.trends.get("http_req_duration")
        table.add_row(
            "HTTP Requests", f"{m.http_reqs:,}",
            "RPS", f"{m.rps:,.1f}",
        )
        table.add_row(
            "Failed Requests", f"[red]{failed.passes if failed else 0:,}[/red]",
            "P95 Latency", f"{latency.percentile(95) if latency else 0:.0f}ms",
        )
        orders = m.counters.get("orders_created")
        delivered = m.counters.get("orders_delivered")
        table.add_row(
            "Orders Created", f"{int(orders.value) if orders else 0:,}",
            "Orders Delivered", f"{int(delivered.value) if delivered else 0:,}",
        )

    return table


def _format_rates(m: MetricsRegistry) -> str:
    lines = []
    for name, rate in sorted(m.rates.items()):
        if name == "http_req_failed" or not rate.total:
            continue
        color = "green" if rate.rate >= 0.95 else "yellow" if rate.rate >= 0.8 else "red"
        lines.append(f"  {name:<28} [{color}]{rate.rate * 100:6.2f}%[/{color}]  ({rate.passes}/{rate.total})")
    return "\n".join(lines) or "  (none)"


def _format_counters(m: MetricsRegistry) -> str:
    lines = [
        f"  {name:<28} {int(counter.value):,}"
        for name, counter in sorted(m.counters.items())
        if name != "http_reqs"
    ]
    return "\n".join(lines) or "  (none)"


def _trend_table(m: MetricsRegistry) -> Table:
    table = Table(title="Latency (ms)", expand=True)
    table.add_column("Trend", style="cyan")
    for column in ("count", "avg", "med", "p90", "p95", "p99", "max"):
        table.add_column(column, justify="right")

    names = [n for n in _SUMMARY_TRENDS if n in m.trends]
    names += sorted(n for n in m.trends if n not in names and not n.startswith("http_req_duration{"))
    for name in names:
        t = m.trends[name].to_dict()
        table.add_row(name, str(t["count"]), f"{t['avg']:.0f}", f"{t['med']:.0f}",
                      f"{t['p90']:.0f}", f"{t['p95']:.0f}", f"{t['p99']:.0f}", f"{t['max']:.0f}")
    return table


def _threshold_table(results: List[ThresholdResult]) -> Table:
    table = Table(title="Thresholds", expand=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Expression")
    table.add_column("Observed", justify="right")
    table.add_column("Result", justify="center")

    for r in results:
        if r.skipped:
            observed, verdict = "-", "[dim]no data[/dim]"
        else:
            observed = f"{r.observed:.4f}" if r.observed < 1 else f"{r.observed:.0f}"
            verdict = "[green]✓ PASS[/green]" if r.passed else "[red]✗ FAIL[/red]"
        table.add_row(r.metric, r.expression, observed, verdict)
    return table


def print_summary(
    metrics: MetricsRegistry,
    threshold_results: Optional[List[ThresholdResult]] = None,
    title: str = "HYP Load Test",
):
    """Print test summary to console."""
    m = metrics
    failed = m.rates.get("http_req_failed")
    checks = m.rates.get("checks")

    console.print("\n")
    console.print(Panel(
        f"""[bold]{title} Summary[/bold]

[cyan]HTTP Requests:[/cyan]      {m.http_reqs:,}
[red]Failed:[/red]             {failed.passes if failed else 0:,} ({(failed.rate if failed else 0) * 100:.2f}%)
[cyan]Checks Passed:[/cyan]      {(checks.rate if checks else 0) * 100:.2f}%
[cyan]Duration:[/cyan]           {m.duration:.2f}s
[cyan]RPS:[/cyan]                {m.rps:,.1f}

[bold]Success Rates:[/bold]
{_format_rates(m)}

[bold]Counters:[/bold]
{_format_counters(m)}
""",
        title="📊 Test Results",
        border_style="green" if all(r.passed for r in threshold_results or []) else "red",
    ))
    console.print(_trend_table(m))

    if threshold_results:
        console.print(_threshold_table(threshold_results))

    if m.errors:
        console.print("[bold]Errors:[/bold]")
        for error, count in sorted(m.errors.items(), key=lambda e: -e[1])[:10]:
            console.print(f"  [red]{error}[/red]: {count:,}")


def build_report(
    metrics: MetricsRegistry,
    threshold_results: Optional[List[ThresholdResult]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    report = metrics.to_dict()
    report["timestamp"] = datetime.now(timezone.utc).isoformat()
    report["thresholds"] = [
        {
            "metric": r.metric,
            "expression": r.expression,
            "observed": r.observed,
            "passed": r.passed,
        }
        for r in threshold_results or []
    ]
    report["passed"] = all(r.passed for r in threshold_results or [])
    report.update(extra)
    return report


def generate_report(
    metrics: MetricsRegistry,
    threshold_results: Optional[List[ThresholdResult]] = None,
    output_path: Optional[str] = None,
    **extra: Any,
) -> str:
    """Serialize the run to JSON, optionally writing it to ``output_path``."""
    json_str = json.dumps(build_report(metrics, threshold_results, **extra), indent=2, default=str)

    if output_path:
        Path(output_path).write_text(json_str)
        console.print(f"[green]Report saved to: {output_path}[/green]")

    return json_str
