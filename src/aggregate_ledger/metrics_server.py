"""
Prometheus metrics server for Aggregate Ledger.

Exposes the ledger metrics (appends, conflicts, snapshots, publishing,
projections) at /metrics. Metrics are per process: run this inside the
process that owns the Ledger, or start it from there with
start_metrics_server().

Usage:
    python -m aggregate_ledger.metrics_server --port 9090 --db ledger.db
"""

import argparse
import time
from pathlib import Path

from aggregate_ledger.kernel.logging import configure_logging, get_logger
from aggregate_ledger.kernel.metrics import start_metrics_server
from aggregate_ledger.kernel.policy import LedgerPolicy
from aggregate_ledger.ledger import Ledger

logger = get_logger(__name__)


def main() -> None:
    """
    Start the metrics server and keep a publishing loop running

    With --db the process opens the ledger and drains pending events to
    its channels every --interval seconds, so the publishing and
    projection metrics have something to report.
    """
    parser = argparse.ArgumentParser(description="Aggregate Ledger Metrics Server")
    parser.add_argument("--port", type=int, default=9090, help="Port to listen on (default: 9090)")
    parser.add_argument("--db", type=Path, default=None, help="Ledger database to publish from")
    parser.add_argument(
        "--interval",
        type=float,
        default=5.0,
        help="Seconds between publishing runs (default: 5)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs in JSON format (default: False)",
    )

    args = parser.parse_args()

    configure_logging(json_output=args.json_logs, log_level=args.log_level)

    logger.info(
        "Starting Prometheus metrics server",
        port=args.port,
        endpoint=f"http://0.0.0.0:{args.port}/metrics",
    )
    start_metrics_server(port=args.port)

    ledger = Ledger(args.db, policy=LedgerPolicy.from_env()) if args.db else None
    logger.info("Metrics server started successfully", publishing=ledger is not None)

    try:
        while True:
            if ledger is not None:
                ledger.publish_pending()
            time.sleep(args.interval)
    except KeyboardInterrupt:
        logger.info("Shutting down metrics server")


if __name__ == "__main__":
    main()
