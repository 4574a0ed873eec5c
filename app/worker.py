"""
Background Worker for Finance Core

Runs the auto-save sweep on a fixed interval.

Usage:
    python -m app.worker            # run forever
    python -m app.worker --once     # one sweep, then exit
"""

import argparse
import asyncio
import logging
import sys

import structlog

from finance_core.config import get_settings, validate_all_settings
from finance_core.orchestrator import create_app_components

logger = structlog.get_logger(__name__)


async def main(run_once: bool = False) -> int:
    checks = validate_all_settings()
    if not all(v for k, v in checks.items() if not k.endswith("_error")):
        logger.error("invalid_settings", **checks)
        return 1

    settings = get_settings().app
    components = create_app_components()
    await components.bootstrap()

    if run_once:
        credited = await components.scheduler.process_due_auto_saves()
        logger.info("auto_save_run_once", credited=credited)
        return 0

    await components.scheduler.run_forever(settings.auto_save_sweep_interval_seconds)
    return 0


def run() -> None:
    parser = argparse.ArgumentParser(description="Finance Core auto-save worker")
    parser.add_argument("--once", action="store_true", help="run a single sweep and exit")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if get_settings().app.debug_mode else logging.INFO,
        format="%(message)s",
        stream=sys.stdout,
    )
    try:
        sys.exit(asyncio.run(main(run_once=args.once)))
    except KeyboardInterrupt:
        logger.info("worker_stopped")


if __name__ == "__main__":
    run()
