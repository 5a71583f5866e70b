#!/usr/bin/env python
"""driptrap CLI entry point.

Run the tarpit with: python -m driptrap
Or after installation: driptrap

Usage:
    driptrap [OPTIONS]

Options:
    --host HOST         Bind address (default: 0.0.0.0)
    --port PORT         Listening port (default: 2222)
    --delay MS          Milliseconds between drip lines (default: 10000)
    --length N          Maximum drip line length, 3-255 (default: 32)
    --config FILE       TOML config file, re-read on SIGHUP
    --stats-interval S  Log statistics every S seconds
    --log-level LEVEL   Logging level (default: INFO)
    --version           Show version and exit
    --help              Show this message and exit
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import Config, get_log_level, load_config

LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def setup_logging(level: str) -> None:
    """Configure logging for the application."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def resolve_log_level(log_level: Optional[str], verbose: int) -> str:
    """Pick the log level; each -v steps one level more verbose."""
    level = log_level or get_log_level()
    if level not in LEVELS:
        level = "INFO"
    return LEVELS[max(0, LEVELS.index(level) - verbose)]


def print_banner() -> None:
    """Print the driptrap startup banner."""
    banner = r"""
        _      _       _
     __| |_ __(_)_ __ | |_ _ __ __ _ _ __
    / _` | '__| | '_ \| __| '__/ _` | '_ \
   | (_| | |  | | |_) | |_| | | (_| | |_) |
    \__,_|_|  |_| .__/ \__|_|  \__,_| .__/
                |_|                 |_|
    Connection tarpit v{}
    """.format(__version__)
    print(banner)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="driptrap",
        description="driptrap - slow-drip connection tarpit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    driptrap                           Trap connections on port 2222
    driptrap --port 22                 Trap the standard SSH port (requires root)
    driptrap -c /etc/driptrap.toml     Load settings from a config file
    driptrap -d 2000 -l 64 -v          Faster, longer lines, debug logging

Signals:
    SIGTERM / SIGINT   Drain sessions, log final statistics, exit
    SIGHUP             Re-read the config file (rebinds if the port changed)
    SIGUSR1            Log current statistics

Environment variables:
    DRIPTRAP_LOG_LEVEL       Logging level
        """,
    )
    parser.add_argument("--host", default=None, help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, default=None, help="Listening port [2222]")
    parser.add_argument(
        "--delay",
        "-d",
        type=int,
        default=None,
        metavar="MS",
        help="Message millisecond delay [10000]",
    )
    parser.add_argument(
        "--length",
        "-l",
        type=int,
        default=None,
        metavar="N",
        help="Maximum banner line length (3-255) [32]",
    )
    parser.add_argument(
        "--config", "-c", type=Path, default=None, metavar="FILE", help="TOML config file"
    )
    parser.add_argument(
        "--log-level",
        "-L",
        default=None,
        type=str.upper,
        choices=LEVELS,
        help="Logging level (default: INFO, or DRIPTRAP_LOG_LEVEL)",
    )
    parser.add_argument(
        "--verbose", "-v", action="count", default=0, help="More verbose logging (repeatable)"
    )
    parser.add_argument(
        "--stats-interval",
        "-s",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Log a statistics summary every SECONDS (default: only on SIGUSR1)",
    )
    parser.add_argument("--no-banner", action="store_true", help="Do not print the banner")
    parser.add_argument("--version", action="version", version=f"driptrap {__version__}")
    return parser


async def serve(config: Config, stats_interval: Optional[float] = None) -> None:
    """Run the tarpit until a terminate signal has been fully handled."""
    # Import here to keep --help and --version fast
    from .server import TarpitServer

    server = TarpitServer(config, stats_interval=stats_interval)
    await server.run()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    setup_logging(resolve_log_level(args.log_level, args.verbose))

    if not args.no_banner:
        print_banner()

    config = load_config(
        config_path=args.config,
        port=args.port,
        delay_ms=args.delay,
        max_line_length=args.length,
        host=args.host,
    )

    try:
        asyncio.run(serve(config, args.stats_interval))
    except OSError as exc:
        logging.error("Cannot listen on %s:%d: %s", config.host, config.port, exc)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
