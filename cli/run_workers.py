"""
Run the underwriting and issuance workers without the API.
Usage: python -m cli.run_workers [--once] [--expire-offers]
"""

import sys
import signal
import logging
import argparse
import threading
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from policyflow.config import get_settings
from policyflow.jobs import IssuanceWorker, UnderwritingWorker
from policyflow.pipeline.orchestrator import InsurancePipeline
from policyflow.store.factory import build_repositories


logger = logging.getLogger("policyflow.workers")


def main():
    parser = argparse.ArgumentParser(description="Run the background pipeline workers")
    parser.add_argument("--once", action="store_true", help="Run a single tick of each worker and exit")
    parser.add_argument(
        "--expire-offers",
        action="store_true",
        help="Mark pending offers past their expiry as expired and exit"
    )
    parser.add_argument("--interval", type=float, help="Override the poll interval in seconds")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    repositories = build_repositories(settings)
    pipeline = InsurancePipeline(repositories, settings=settings)
    interval = args.interval or settings.worker_interval_sec

    workers = [
        UnderwritingWorker(
            repositories.applications,
            pipeline.underwriting,
            interval=interval,
            batch_limit=settings.worker_batch_limit,
        ),
        IssuanceWorker(
            repositories.offers,
            pipeline.policies,
            interval=interval,
            batch_limit=settings.worker_batch_limit,
        ),
    ]

    try:
        if args.expire_offers:
            count = pipeline.offers.expire_stale()
            logger.info(f"Expired {count} offers")
            return

        if args.once:
            ok = all([worker.run_once() for worker in workers])
            sys.exit(0 if ok else 1)

        shutdown = threading.Event()

        def handle_signal(signum, frame):
            logger.info(f"Received signal {signum}, stopping workers")
            shutdown.set()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

        for worker in workers:
            worker.start()
        shutdown.wait()
        for worker in workers:
            worker.stop()
    finally:
        repositories.close()


if __name__ == "__main__":
    main()
