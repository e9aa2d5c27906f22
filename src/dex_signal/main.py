"""
DEX Signal - Main Entry Point

Usage:
    python -m dex_signal.main --mode watch            # Run ingestion until SIGINT/SIGTERM
    python -m dex_signal.main --mode rank --risk LOW  # Score the current universe once

Configuration:
    Read from environment variables (see dex_signal.config).

Modes:
    - watch: warm start, hourly pool refresh, live swap subscription,
             backfill and summary recomputation
    - rank:  one-shot scoring of the current token universe using the
             cached swap set; prints JSON to stdout
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from typing import Optional

# Configure logging before imports
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

from dex_signal.config import SignalConfig  # noqa: E402
from dex_signal.core.scoring import RiskLevel, normalize_weights  # noqa: E402
from dex_signal.core.service import SignalService  # noqa: E402
from dex_signal.ingestion.client import NoDataError  # noqa: E402


def parse_weights(values: Optional[list[str]]) -> dict[str, float]:
    """Parse NAME=VALUE weight overrides."""
    weights: dict[str, float] = {}
    for item in values or []:
        name, sep, value = item.partition("=")
        if not sep:
            raise argparse.ArgumentTypeError(f"Weight must be NAME=VALUE, got {item!r}")
        weights[name.strip()] = float(value)
    return weights


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="DEX liquidity-pool signal pipeline")
    parser.add_argument(
        "--mode",
        choices=["watch", "rank"],
        default="watch",
        help="Run mode (default: watch)",
    )
    parser.add_argument(
        "--risk",
        choices=[r.value for r in RiskLevel],
        default=None,
        help="Risk bucket to rank (rank mode only)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of tokens to return (rank mode only)",
    )
    parser.add_argument(
        "--weight",
        action="append",
        metavar="NAME=VALUE",
        help="Scoring weight override, e.g. --weight good_trader=0.5",
    )
    args = parser.parse_args(argv)

    try:
        args.weights = parse_weights(args.weight)
        normalize_weights(args.weights)
    except (ValueError, argparse.ArgumentTypeError) as e:
        parser.error(f"invalid --weight: {e}")

    return args


async def run_watch(config: SignalConfig) -> None:
    service = SignalService(config)

    loop = asyncio.get_running_loop()

    def handle_signal(sig):
        logger.info(f"Received signal {sig}, initiating shutdown...")
        service.request_stop()

    try:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
    except NotImplementedError:
        # Windows doesn't support add_signal_handler
        pass

    await service.run_forever()


async def run_rank(config: SignalConfig, args: argparse.Namespace) -> int:
    service = SignalService(config)
    try:
        await service.warm_start()
        ranked = await service.rank_tokens(
            risk=RiskLevel(args.risk) if args.risk else None,
            weights=args.weights,
            limit=args.limit,
        )
    except NoDataError as e:
        logger.error(f"Cannot rank tokens: {e}")
        return 1
    finally:
        await service.close()

    print(json.dumps([r.to_dict() for r in ranked], indent=2))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    config = SignalConfig.from_env()

    if args.mode == "rank":
        return asyncio.run(run_rank(config, args))

    asyncio.run(run_watch(config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
