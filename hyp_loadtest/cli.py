#!/usr/bin/env python3
"""
HYP Load Test Runner
====================
Run a named scenario against the HYP backend.

Usage:
    hyp-loadtest smoke --url http://localhost:8080/api/v2
    hyp-loadtest lifecycle --restaurant 324672 --mode sanity
    hyp-loadtest lifecycle --restaurant 324672 --mode multi --orders 200
    hyp-loadtest load --restaurant 324672 --output report.json

Environment variables (BASE_URL, RESTAURANT_ID, CUSTOMER_ID, USER_MODE,
USER_COUNT, ORDER_COUNT, LOAD_TEST_OTP, REQUEST_TIMEOUT) are read first;
flags override them.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, List

from rich.logging import RichHandler
from rich.panel import Panel

from hyp_loadtest.config import LoadTestConfig, USER_MODES
from hyp_loadtest.errors import LoadTestError
from hyp_loadtest.report import console, create_live_table, generate_report, print_summary
from hyp_loadtest.scenarios import SCENARIOS, get_scenario, run_scenario

logger = logging.getLogger("hyp_loadtest")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="🍔 HYP Backend Load Test Suite",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Scenarios:\n" + "\n".join(
            f"  {name:<16} {s.description}" for name, s in SCENARIOS.items()
        ),
    )

    parser.add_argument("scenario", choices=list(SCENARIOS), help="Scenario to run")
    parser.add_argument("--url", "-u", help="Base API URL (BASE_URL)")
    parser.add_argument("--restaurant", "-r", help="Restaurant id (RESTAURANT_ID)")
    parser.add_argument("--customer", help="Customer id for single-order (CUSTOMER_ID)")
    parser.add_argument("--mode", "-m", choices=USER_MODES, help="User mode (USER_MODE)")
    parser.add_argument("--users", type=int, help="Actor pool size (USER_COUNT)")
    parser.add_argument("--orders", type=int, help="Orders to place in multi mode (ORDER_COUNT)")
    parser.add_argument("--max-actors", type=int, help="Cap concurrent actors of ramping profiles")
    parser.add_argument("--think-scale", type=float, help="Multiplier for think time; 0 disables it")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    parser.add_argument("--insecure", action="store_true", help="Skip TLS certificate verification")
    parser.add_argument("--no-live", action="store_true", help="Disable the live metrics table")
    parser.add_argument("--output", "-o", type=str, help="Output file for JSON report")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def setup_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )
    # Per-request noise from aiohttp is not useful at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def load_config(args: argparse.Namespace) -> LoadTestConfig:
    return LoadTestConfig.from_env().with_overrides(
        base_url=args.url,
        restaurant_id=args.restaurant,
        customer_id=args.customer,
        user_mode=args.mode,
        user_count=args.users,
        order_count=args.orders,
        max_actors=args.max_actors,
        think_time_scale=args.think_scale,
        request_timeout=args.timeout,
        verify_ssl=False if args.insecure else None,
    )


async def run(args: argparse.Namespace) -> int:
    config = load_config(args)
    scenario = get_scenario(args.scenario)
    profile = scenario.profile_for(config)

    console.print(Panel(
        f"[bold]{scenario.title}[/bold]\n\n"
        f"{scenario.description}\n\n"
        f"Target:     {config.base_url}\n"
        f"Restaurant: {config.restaurant_id or 'not set'}\n"
        f"Mode:       {config.user_mode}\n"
        f"Profile:    {profile.describe()}",
        title=f"Running Scenario: {scenario.name}",
        border_style="blue",
    ))

    outcome = await run_scenario(
        scenario,
        config,
        live=not args.no_live,
        table_factory=create_live_table,
    )

    print_summary(outcome.metrics, outcome.thresholds, title=scenario.title)
    generate_report(
        outcome.metrics,
        outcome.thresholds,
        output_path=args.output,
        scenario=scenario.name,
        base_url=config.base_url,
        user_mode=config.user_mode,
        profile=profile.describe(),
    )

    if outcome.passed:
        console.print("[bold green]✓ All thresholds passed[/bold green]")
        return 0
    console.print("[bold red]✗ Thresholds violated[/bold red]")
    return 1


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        code = asyncio.run(run(args))
    except LoadTestError as e:
        logger.error("%s", e)
        code = 2
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
