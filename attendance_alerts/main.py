"""Main entry point for the attendance alert pipeline."""

import argparse
import json
import logging
import os
import sys
from threading import Event

from .config import AppConfig, load_config
from .db import open_store
from .dispatcher import BackendPushTransport, Dispatcher, LoggingTransport, PushTransport
from .errors import LoggingNoticeSink
from .listener import ListenerManager, resolve_recipient_key
from .upcoming import UpcomingService

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


def create_transport(config: AppConfig) -> PushTransport:
    """Create a push transport based on configuration."""
    method = config.dispatch.method
    if method == "backend":
        return BackendPushTransport(config.backend)
    if method == "sms":
        from .twilio_notifier import TwilioSmsTransport
        return TwilioSmsTransport(config.twilio)
    if method == "outbox":
        from .outbox import SqsOutboxTransport
        return SqsOutboxTransport(config.outbox)
    return LoggingTransport()


def run_listener(args, stop: Event = None) -> None:
    """Watch the signed-in user's alert record until interrupted."""
    config = load_config()
    store = open_store(config.store.db_path, config.store.poll_interval_seconds)
    dispatcher = Dispatcher(create_transport(config), max_workers=config.dispatch.workers)
    manager = ListenerManager(
        store,
        dispatcher,
        notices=LoggingNoticeSink(),
        notice_seconds=config.dispatch.notice_seconds,
    )
    stop = stop or Event()

    try:
        key = manager.start_session(args.role, args.user_id, args.student_id, args.parent_id)
        if key is None:
            logger.error("Could not resolve an alert record for this user.")
            sys.exit(1)
        logger.info(f"Listening for alerts on {key} (dispatch={config.dispatch.method}). Ctrl+C to stop.")
        stop.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        manager.end_session()
        dispatcher.shutdown(wait=True)
        store.close()


def run_upcoming(args) -> None:
    config = load_config(require_dispatch=False)
    store = open_store(config.store.db_path)
    try:
        service = UpcomingService(
            store,
            limit=config.schedule.upcoming_limit,
            grace_minutes=config.schedule.grace_minutes,
        )
        print(json.dumps(service.get_ranked_upcoming(args.entity_id), indent=2))
    finally:
        store.close()


def run_ongoing(args) -> None:
    config = load_config(require_dispatch=False)
    store = open_store(config.store.db_path)
    try:
        service = UpcomingService(store, grace_minutes=config.schedule.grace_minutes)
        print(service.count_ongoing(args.entity_ids))
    finally:
        store.close()


def run_mark_read(args) -> None:
    config = load_config(require_dispatch=False)
    key = resolve_recipient_key(args.role, args.user_id, args.student_id, args.parent_id)
    if key is None:
        logger.error("Could not resolve an alert record for this user.")
        sys.exit(1)
    store = open_store(config.store.db_path)
    try:
        store.mark_read(key, args.ids)
        logger.info(f"Marked {len(args.ids)} alert(s) read on {key}")
    finally:
        store.close()


def _add_user_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--role", required=True, choices=["student", "parent", "admin"])
    parser.add_argument("--user-id", required=True, help="Signed-in user's uid")
    parser.add_argument("--student-id", default=None, help="Student number (students)")
    parser.add_argument("--parent-id", default=None, help="Canonical parent id (parents)")


def main(argv=None):
    """Main entry point with command-line argument parsing."""
    parser = argparse.ArgumentParser(
        description="School attendance alert listener and schedule tools"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    listen = subparsers.add_parser("listen", help="Push new unread alerts for one user")
    _add_user_args(listen)
    listen.add_argument(
        "--method",
        choices=["backend", "sms", "outbox", "log"],
        default=None,
        help="Dispatch method (default: DISPATCH_METHOD env var or 'backend')"
    )
    listen.set_defaults(func=run_listener)

    upcoming = subparsers.add_parser("upcoming", help="Show ranked upcoming classes")
    upcoming.add_argument("entity_id", help="Student number")
    upcoming.set_defaults(func=run_upcoming)

    ongoing = subparsers.add_parser("ongoing", help="Count classes happening now")
    ongoing.add_argument("entity_ids", nargs="+", help="Student numbers")
    ongoing.set_defaults(func=run_ongoing)

    mark_read = subparsers.add_parser("mark-read", help="Mark alerts as read")
    _add_user_args(mark_read)
    mark_read.add_argument("ids", nargs="+", help="Alert ids")
    mark_read.set_defaults(func=run_mark_read)

    args = parser.parse_args(argv)

    # Set environment variable if method is specified
    if getattr(args, "method", None):
        os.environ["DISPATCH_METHOD"] = args.method

    try:
        args.func(args)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
