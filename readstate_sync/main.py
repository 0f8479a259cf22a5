#!/usr/bin/env python3
"""
Reading-State Sync Tool

A CLI tool that reconciles reading progress between an e-reader's vendor
database and a second reading application's per-book metadata.
"""

import argparse
import logging
import sys
import time
from datetime import datetime
from typing import Any, Dict

import pytz
from croniter import croniter

from readstate_sync.config import DEFAULT_CONFIG_PATH, Config
from readstate_sync.sync_manager import ReadingStateSyncCoordinator, summarize
from readstate_sync.utils import format_duration

LOG_FILE = "readstate_sync.log"


def setup_logging(verbose: bool = False, log_file: str = LOG_FILE) -> None:
    """Setup logging configuration with controlled verbosity"""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    detailed_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    clean_format = "%(asctime)s - %(levelname)s - %(message)s"

    # File handler (always detailed for debugging)
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(detailed_format))

    # Console handler (clean unless verbose)
    console_handler = logging.StreamHandler(sys.stdout)
    if verbose:
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter(detailed_format))
    else:
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter(clean_format))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Per-row store chatter is only interesting when debugging
    if not verbose:
        logging.getLogger("readstate_sync.vendor_db").setLevel(logging.WARNING)
        logging.getLogger("readstate_sync.host_state").setLevel(logging.WARNING)


def sync_once(coordinator: ReadingStateSyncCoordinator) -> Dict[str, Any]:
    """Perform a one-time synchronization"""
    logger = logging.getLogger(__name__)
    logger.info("Starting one-time sync...")

    start_time = time.time()
    outcomes = coordinator.sync_all()
    result = summarize(outcomes)

    duration = time.time() - start_time
    logger.info("=" * 50)
    logger.info("📚 SYNC SUMMARY")
    logger.info("=" * 50)
    logger.info(f"⏱️  Duration: {format_duration(duration)}")
    logger.info(f"📖 Books processed: {result['books_processed']}")
    logger.info(f"⬅️  Synced to host: {result['synced_to_host']}")
    logger.info(f"➡️  Synced to vendor: {result['synced_to_vendor']}")
    logger.info(f"= Already in sync: {result['no_sync_needed']}")
    logger.info(f"⏭ Skipped: {result['skipped']}")

    if result["errors"]:
        logger.warning(f"❌ Failures: {len(result['errors'])}")
        for error in result["errors"]:
            logger.error(f"  - {error}")
    else:
        logger.info("🎉 No errors encountered!")

    logger.info("=" * 50)
    coordinator.print_timing_summary(outcomes)

    return result


def show_status(coordinator: ReadingStateSyncCoordinator, book_id: str) -> None:
    """Print both sides' progress for a book and what a sync would do"""
    vendor, host, decision = coordinator.inspect_book(book_id)
    print(f"Book: {book_id}")
    print(f"  Vendor: {vendor.percent * 100:5.1f}%  {vendor.status.name:8}  {vendor.timestamp.isoformat()}")
    print(f"  Host:   {host.percent * 100:5.1f}%  {host.status.name:8}  {host.timestamp.isoformat()}")
    print(f"  Decision: {decision.action.value} - {decision.reason}")


def show_config(config: Config) -> None:
    """Show configuration"""
    logger = logging.getLogger(__name__)
    logger.info("=== Configuration ===")
    for key, value in sorted(config.get_global().items()):
        logger.info(f"  {key}: {value}")


def run_cron_mode(coordinator: ReadingStateSyncCoordinator, config: Config) -> None:
    """Run the sync tool in cron mode, continuously syncing based on schedule"""
    logger = logging.getLogger(__name__)

    cron_config = config.get_cron_config()
    schedule = cron_config["schedule"]
    timezone_name = cron_config["timezone"]

    try:
        tz = pytz.timezone(timezone_name)
        logger.info(f"Using timezone: {timezone_name}")
    except pytz.exceptions.UnknownTimeZoneError:
        logger.error(f"Unknown timezone: {timezone_name}. Using UTC.")
        tz = pytz.UTC

    try:
        cron = croniter(schedule, datetime.now(tz))
        next_run = cron.get_next(datetime)
    except (ValueError, KeyError) as e:
        logger.error(f"Invalid cron schedule '{schedule}': {str(e)}")
        return

    logger.info(f"🕐 Starting cron mode ({schedule}) - press Ctrl+C to stop")
    logger.info(f"⏰ Next sync at {next_run.strftime('%Y-%m-%d %H:%M:%S')}")

    try:
        while True:
            time_until_next = (next_run - datetime.now(tz)).total_seconds()

            if time_until_next > 0:
                time.sleep(min(time_until_next, 60))
                continue

            logger.info("🔄 Running scheduled sync...")
            result = sync_once(coordinator)
            if result["errors"]:
                logger.warning(f"Sync completed with {len(result['errors'])} failures")
            else:
                logger.info("✅ Scheduled sync completed successfully")

            cron = croniter(schedule, datetime.now(tz))
            next_run = cron.get_next(datetime)
            logger.info(f"⏰ Next sync at {next_run.strftime('%Y-%m-%d %H:%M:%S')}")

    except KeyboardInterrupt:
        logger.info("🛑 Cron mode stopped by user")


def main() -> None:
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Reading-State Sync Tool: reconcile reading progress between the vendor database and the host reader"
    )

    parser.add_argument(
        "command",
        choices=["sync", "status", "config", "cron"],
        help="Command to execute: sync (one pass), status (inspect one book), config (show configuration), or cron (continuous sync)",
    )
    parser.add_argument("book_id", nargs="?", help="Book identifier for the status command")
    parser.add_argument("--config", "-c", default=DEFAULT_CONFIG_PATH, help="Path to the YAML configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be synced without making changes",
    )

    args = parser.parse_args()

    if args.command == "status" and not args.book_id:
        parser.error("status requires a book_id")

    setup_logging(verbose=args.verbose)
    logger = logging.getLogger(__name__)

    try:
        config = Config(config_path=args.config)

        if args.command == "config":
            show_config(config)
            return

        coordinator = ReadingStateSyncCoordinator.from_config(
            config.get_global(),
            dry_run=True if args.dry_run else None,
            show_progress=args.command == "sync",
        )

        if args.command == "status":
            show_status(coordinator, args.book_id)
            return

        if args.command == "sync":
            result = sync_once(coordinator)
            if result["errors"]:
                print("\n❌ Sync completed with failures. Check logs for details.")
                sys.exit(1)
            updated = result["synced_to_host"] + result["synced_to_vendor"]
            if updated:
                print(f"\n✅ Sync completed successfully. {updated} books updated.")
            else:
                print("\n✅ Sync completed successfully. No changes needed.")
            sys.exit(0)

        if args.command == "cron":
            run_cron_mode(coordinator, config)
            sys.exit(0)

    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Application error: {str(e)}")
        if args.verbose:
            logger.exception("Full error details:")
        sys.exit(1)


if __name__ == "__main__":
    main()
