#!/usr/bin/env python3
"""
Generation Worker Startup Script
Runs RQ workers that pick up queued generation processes and drive them
through the video pipeline.

Usage:
    python scripts/run_workers.py                # WORKER_COUNT workers
    python scripts/run_workers.py --workers 4
    python scripts/run_workers.py --burst        # drain the queue and exit
    python scripts/run_workers.py --check        # preflight only
"""

import argparse
import logging
import os
import sys
import signal
from multiprocessing import Process
from typing import Dict, List

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rq import Worker, Queue
from sqlalchemy import text

from app.core.config import settings
from app.core.database import SessionLocal, init_db
from app.core.redis import get_redis, Queues, redis_health_check

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("shortsforge.worker")


def preflight() -> Dict[str, str]:
    """
    Check what a pipeline run needs before taking jobs: Redis for the queue
    and progress records, the database for videos and credits.
    """
    checks = {}

    health = redis_health_check()
    if health.get("connected"):
        checks["redis"] = f"ok ({health.get('redis_version')})"
    else:
        checks["redis"] = f"error: {health.get('error')} [{health.get('url')}]"

    try:
        init_db()
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    return checks


def start_worker(worker_name: str, burst: bool = False):
    """Run one worker on the generation queue until stopped (or drained in burst mode)."""
    redis_conn = get_redis()
    queue = Queue(
        Queues.GENERATION,
        connection=redis_conn,
        default_timeout=settings.JOB_TIMEOUT_PIPELINE,
    )

    worker = Worker(
        [queue],
        connection=redis_conn,
        name=worker_name,
        log_job_description=True,
        job_monitoring_interval=settings.WORKER_MONITORING_INTERVAL,
    )

    logger.info(
        f"[Worker] {worker_name} listening on '{Queues.GENERATION}' "
        f"(job timeout {settings.JOB_TIMEOUT_PIPELINE}s{', burst' if burst else ''})"
    )
    worker.work(burst=burst)


def run_worker_process(worker_name: str, burst: bool):
    """Target for spawned worker processes."""
    def handle_shutdown(signum, frame):
        logger.info(f"[Worker] {worker_name} received signal {signum}, stopping")
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    start_worker(worker_name, burst)


def run_pool(count: int, burst: bool):
    processes: List[Process] = []

    def shutdown_all(signum, frame):
        logger.info("[Worker] Stopping all workers...")
        for p in processes:
            if p.is_alive():
                p.terminate()
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown_all)
    signal.signal(signal.SIGINT, shutdown_all)

    for i in range(1, count + 1):
        p = Process(target=run_worker_process, args=(f"generation-{i}", burst), name=f"generation-{i}")
        p.start()
        processes.append(p)
        logger.info(f"[Worker] Started generation-{i} ({i}/{count}, PID {p.pid})")

    for p in processes:
        p.join()


def main():
    parser = argparse.ArgumentParser(description="Run ShortsForge generation workers")
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=settings.WORKER_COUNT,
        help=f"Number of worker processes (default: {settings.WORKER_COUNT})"
    )
    parser.add_argument(
        "--burst", "-b",
        action="store_true",
        help="Exit once the generation queue is empty"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Run the Redis and database checks and exit"
    )
    args = parser.parse_args()

    checks = preflight()
    for name, result in checks.items():
        logger.info(f"[Preflight] {name}: {result}")
    healthy = all(result.startswith("ok") for result in checks.values())

    if args.check or not healthy:
        sys.exit(0 if healthy else 1)

    if args.workers <= 1:
        start_worker("generation-main", args.burst)
    else:
        run_pool(args.workers, args.burst)


if __name__ == "__main__":
    main()
