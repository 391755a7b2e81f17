#!/usr/bin/env python3
"""
Mock Services Runner
====================
Serve every third-party mock on its own port in one process.

Usage:
    hyp-mocks
    hyp-mocks --only payment sms --delay 0
    RESPONSE_DELAY_MS=200 hyp-mocks --host 0.0.0.0
"""

import argparse
import asyncio
import logging
from typing import Optional, List, Dict, Tuple, Callable

from aiohttp import web
from rich.logging import RichHandler
from rich.table import Table

from hyp_loadtest.mocks import delivery, payment, pos, push, sms, whatsapp
from hyp_loadtest.mocks.base import STATS
from hyp_loadtest.report import console

logger = logging.getLogger(__name__)

# name -> (app factory, default port)
MOCKS: Dict[str, Tuple[Callable[..., web.Application], int]] = {
    "delivery": (delivery.create_app, delivery.DEFAULT_PORT),
    "payment": (payment.create_app, payment.DEFAULT_PORT),
    "push": (push.create_app, push.DEFAULT_PORT),
    "pos": (pos.create_app, pos.DEFAULT_PORT),
    "whatsapp": (whatsapp.create_app, whatsapp.DEFAULT_PORT),
    "sms": (sms.create_app, sms.DEFAULT_PORT),
}


async def start_mocks(
    names: List[str],
    host: str = "127.0.0.1",
    delay_ms: Optional[float] = None,
    port_offset: int = 0,
) -> List[web.AppRunner]:
    """Start the named mocks; callers own the returned runners' cleanup."""
    runners = []
    for name in names:
        factory, port = MOCKS[name]
        app = factory(delay_ms)
        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, host, port + port_offset)
        await site.start()
        runners.append(runner)
        logger.info("%s listening on http://%s:%d (delay %.0fms)",
                    app[STATS].service, host, port + port_offset, app[STATS].delay_ms)
    return runners


def _mock_table(host: str, names: List[str], port_offset: int) -> Table:
    table = Table(title="🧪 Mock Services")
    table.add_column("Mock", style="cyan")
    table.add_column("URL", style="green")
    for name in names:
        _, port = MOCKS[name]
        table.add_row(name, f"http://{host}:{port + port_offset}")
    return table


async def serve(names: List[str], host: str, delay_ms: Optional[float], port_offset: int):
    runners = await start_mocks(names, host, delay_ms, port_offset)
    console.print(_mock_table(host, names, port_offset))
    try:
        await asyncio.Event().wait()
    finally:
        for runner in runners:
            await runner.cleanup()


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="🧪 HYP third-party mock services")
    parser.add_argument("--only", nargs="+", choices=list(MOCKS), help="Start only these mocks")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--delay", type=float, help="Response delay in ms (overrides RESPONSE_DELAY_MS)")
    parser.add_argument("--port-offset", type=int, default=0, help="Added to every default port")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    try:
        asyncio.run(serve(args.only or list(MOCKS), args.host, args.delay, args.port_offset))
    except KeyboardInterrupt:
        console.print("\n[yellow]Mocks stopped[/yellow]")


if __name__ == "__main__":
    main()
