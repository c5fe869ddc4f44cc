#!/usr/bin/env python3
"""Process due scheduled notifications.

Usage:
    # Single run (process due notifications once)
    python scripts/process_scheduled.py --once --limit 10

    # Continuous loop (Ctrl+C to stop)
    python scripts/process_scheduled.py --loop --interval 60

    # Outside production
    python scripts/process_scheduled.py --once --force

Environment variables:
    APP_ENV: Must be "production" unless --force is given
    WORKER_BATCH_SIZE: Notifications per run (default: 10)
    WORKER_POLL_INTERVAL_SECONDS: Seconds between cycles (default: 60)
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import get_settings
from app.workers import (
    run_worker_once,
    run_worker_loop,
    configure_worker_logging,
)


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be 0 or greater, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Process due scheduled notifications",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--once",
        action="store_true",
        help="Process due notifications once and exit",
    )
    mode.add_argument(
        "--loop",
        action="store_true",
        help="Keep processing in a loop",
    )

    parser.add_argument(
        "--limit",
        type=non_negative_int,
        default=None,
        help="Maximum notifications to process per run",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between cycles (loop mode only)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum iterations before stopping (loop mode only)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Run even when APP_ENV is not production",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Reduce logging to warnings only",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entrypoint for scheduled notification processing."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        configure_worker_logging(logging.DEBUG)
    elif args.quiet:
        configure_worker_logging(logging.WARNING)
    else:
        configure_worker_logging(logging.INFO)

    logger = logging.getLogger(__name__)

    if not get_settings().is_production and not args.force:
        print("Refusing to process scheduled notifications outside production; use --force.")
        return 1

    try:
        if args.once:
            logger.info("Processing due scheduled notifications...")
            result = run_worker_once(batch_size=args.limit)

            print("\n--- Scheduled Notification Run ---")
            print(f"Processed: {result.total_processed}")
            print(f"Failed: {result.total_failed}")
            print(f"Skipped: {result.total_skipped}")

            for worker_result in result.worker_results.values():
                for err in worker_result.errors:
                    print(f"  - {err.get('item_id', '?')}: {err['error']}")

            if result.errors:
                print(f"Errors: {len(result.errors)}")
                for err in result.errors:
                    print(f"  - {err}")

            return 0 if not result.errors else 1

        logger.info("Starting scheduled notification loop (Ctrl+C to stop)...")
        run_worker_loop(
            interval_seconds=args.interval,
            max_iterations=args.max_iterations,
            batch_size=args.limit,
        )
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Processing failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
