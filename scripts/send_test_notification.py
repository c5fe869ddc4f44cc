#!/usr/bin/env python3
"""Send an ad-hoc test notification to one user.

Usage:
    python scripts/send_test_notification.py USER_ID
    python scripts/send_test_notification.py USER_ID --type exam.reminder --channel mail --channel sms
    python scripts/send_test_notification.py USER_ID --message "Hello from the CLI"
"""

import argparse
import logging
import sys
from pathlib import Path
from uuid import UUID, uuid4

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import Session

from app.db.session import engine
from app.models.notification import NotificationChannel
from app.services.dispatcher import build_dispatcher
from app.services.errors import UnknownNotificationTypeError
from app.workers import configure_worker_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Send a test notification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("user_id", type=UUID, help="Recipient user id")
    parser.add_argument(
        "--type",
        default="system.alert",
        help="Notification type (default: system.alert)",
    )
    parser.add_argument(
        "--channel",
        action="append",
        choices=[c.value for c in NotificationChannel],
        help="Channel to use; repeat for several (default: the type's channels)",
    )
    parser.add_argument(
        "--message",
        default="This is a test notification.",
        help="Message body",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Send one notification and print the per-channel results."""
    args = build_parser().parse_args(argv)
    configure_worker_logging(logging.DEBUG if args.verbose else logging.INFO)

    with Session(engine) as session:
        dispatcher = build_dispatcher(session)
        try:
            result = dispatcher.send_to_users(
                args.type,
                [args.user_id],
                {"title": "Test notification", "message": args.message},
                channels=args.channel,
                origin_key=f"test:{uuid4()}",
            )
        except UnknownNotificationTypeError as e:
            print(str(e))
            return 2
        session.commit()

    if result.recipient_count == 0:
        print(f"User {args.user_id} not found")
        return 1

    print(f"Sent {args.type}: {result.succeeded}/{result.attempted} deliveries succeeded")
    for delivery in result.deliveries:
        outcome = "ok" if delivery.result.success else f"failed ({delivery.result.error})"
        print(f"  {delivery.result.channel.value}: {outcome}")
    return 0 if result.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
