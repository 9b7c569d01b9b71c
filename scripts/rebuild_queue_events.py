#!/usr/bin/env python3
"""
Rebuild Queue Events
====================

Regenerates a location's queue events from its sample log.

Run this after changing detection thresholds or the estimator, or to
repair events written by an older detector. Stored events for the location
are deleted first; the sample log is never modified.

Stop the queuewatch service first and start it again afterwards. A running
monitor holds the id of its open event in memory; the rebuild deletes that
event. The script refuses to run while the location has an open event
unless ``--force`` is given.

Usage:
    python scripts/rebuild_queue_events.py
    python scripts/rebuild_queue_events.py --db ./queuewatch.db --capacity 6 --empty 2
    python scripts/rebuild_queue_events.py --estimator gap_refill --dry-run
    python scripts/rebuild_queue_events.py --force
"""

import argparse
import logging
import os
import sys

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from queuewatch.agent import DetectionThresholds, rebuild_events
from queuewatch.config import settings
from queuewatch.store import SQLiteStore


logger = logging.getLogger("rebuild_queue_events")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Regenerate queue events by replaying the sample log"
    )
    parser.add_argument(
        "--db",
        type=str,
        default=settings.storage.db_path,
        help=f"SQLite database (default: {settings.storage.db_path})",
    )
    parser.add_argument(
        "--location",
        type=str,
        default=settings.location.location_id,
        help="Location to rebuild",
    )
    parser.add_argument("--capacity", type=int, default=settings.detection.capacity)
    parser.add_argument("--empty", type=int, default=settings.detection.empty)
    parser.add_argument(
        "--estimator",
        choices=["turnover", "gap_refill"],
        default=settings.detection.estimator,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report how many samples and events exist",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Rebuild even though the location has an open queue event",
    )
    args = parser.parse_args()

    try:
        thresholds = DetectionThresholds(
            capacity=args.capacity,
            empty=args.empty,
            estimator=args.estimator,
        )
    except ValueError as e:
        logger.error(f"Invalid thresholds: {e}")
        return 2

    with SQLiteStore(args.db) as store:
        samples = store.count_samples(args.location)
        open_events = store.list_open_events(args.location)
        events = len(store.list_closed_events(args.location)) + len(open_events)
        logger.info("=" * 60)
        logger.info(f"Database: {args.db}")
        logger.info(f"Location: {args.location}")
        logger.info(f"Samples: {samples}, stored events: {events} ({len(open_events)} open)")
        logger.info(
            f"Thresholds: capacity={thresholds.capacity}, empty={thresholds.empty}, "
            f"estimator={thresholds.estimator}"
        )
        logger.info("=" * 60)

        if args.dry_run:
            logger.info("Dry run, nothing changed")
            return 0

        if open_events and not args.force:
            logger.error(
                f"Location has {len(open_events)} open queue event(s); the service "
                "is probably running. Stop it first, or pass --force."
            )
            return 1

        logger.warning(
            "Rebuilding deletes every stored event of the location. The "
            "queuewatch service must be stopped now and restarted afterwards."
        )
        report = rebuild_events(store, store, args.location, thresholds)

    logger.info(f"Deleted events:   {report.deleted}")
    logger.info(f"Generated events: {report.generated}")
    logger.info(f"Samples replayed: {report.samples_replayed}")
    if report.discarded_open_event:
        logger.info("Discarded one unfinished episode at the end of the log")
    return 0


if __name__ == "__main__":
    sys.exit(main())
