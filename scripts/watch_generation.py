#!/usr/bin/env python3
"""
Generation Watcher
Follows a generation process from the command line until it finishes.

Usage:
    python scripts/watch_generation.py <process_id> --user <user_id>
    python scripts/watch_generation.py <process_id> --user <user_id> --api http://localhost:8000
"""

import argparse
import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import settings
from app.core.exceptions import ProcessNotFoundError
from app.services.poller import HttpProgressClient, ProgressPoller, describe_step

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("watch_generation")


def print_update(snapshot):
    logger.info(f"{snapshot.progress:3d}% | {snapshot.status} | {describe_step(snapshot)}")


async def watch(process_id: str, user_id: str, api_url: str, interval: float) -> int:
    poller = ProgressPoller(HttpProgressClient(api_url, user_id), interval=interval)
    try:
        final = await poller.wait(process_id, on_update=print_update)
    except ProcessNotFoundError:
        logger.error(f"Process {process_id} not found")
        return 2

    if final is None:
        return 1
    if final.outcome.kind == "success":
        logger.info(f"Final video: {final.outcome.final_video_url}")
        return 0
    logger.error(f"Generation failed: {final.outcome.reason}")
    return 1


def main():
    parser = argparse.ArgumentParser(description="Follow a ShortsForge generation until it finishes")
    parser.add_argument("process_id", help="Process id returned by the submit endpoint")
    parser.add_argument("--user", "-u", required=True, help="User id that submitted the process")
    parser.add_argument("--api", default=settings.API_BASE_URL, help="API base URL")
    parser.add_argument("--interval", "-i", type=float, default=2.0, help="Seconds between reads")

    args = parser.parse_args()

    try:
        code = asyncio.run(watch(args.process_id, args.user, args.api, args.interval))
    except KeyboardInterrupt:
        logger.info("Stopped watching; the generation keeps running")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
