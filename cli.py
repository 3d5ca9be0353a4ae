"""
fxsentiment CLI - retail FX sentiment collector.

Usage:
    fxsentiment run [--immediately | --interval MINUTES]
    fxsentiment once
    fxsentiment changes [PAIR] [--hours N]
    fxsentiment stats
    fxsentiment test-email [--connect-only]
"""

import argparse
import logging
import sys
import time
from datetime import datetime

from dotenv import load_dotenv

from config import ConfigError, SentimentConfig, load_config
from domain.display import IMPORTANCE_DISPLAY, combined_icon
from orchestration.pipeline import CycleReport, build_pipeline
from orchestration.scheduler import Scheduler
from ports import SchedulingError
from services import create_notification_engine
from storage import DataFileStore, SignalChangeHistory

logger = logging.getLogger(__name__)


def setup_logging(config: SentimentConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.logging.level),
        format=config.logging.format,
    )


def print_report(report: CycleReport) -> None:
    for name, result in report.sources.items():
        line = f"{name}: {result.status.value}"
        if result.error:
            line += f" ({result.error})"
        elif result.note:
            line += f" ({result.note})"
        print(line)
        for record in result.records:
            print(f"  {record.summary()}")

    if report.events:
        print(f"\n{len(report.events)} signal change(s):")
        for event in report.events:
            print(f"  {event.currency_pair}: {event.detailed_description}")


def cmd_run(args: argparse.Namespace, config: SentimentConfig) -> int:
    """Run cycles on a schedule until interrupted."""
    pipeline = build_pipeline(config)
    DataFileStore(config.storage.data_dir).cleanup_old_files(config.storage.keep_days)
    SignalChangeHistory(config.storage.data_dir).cleanup(config.storage.keep_days)

    scheduler = Scheduler(
        pipeline.run_cycle,
        name="sentiment",
        grace_seconds=config.scheduler.grace_seconds,
        force_seconds=config.scheduler.force_seconds,
        single_flight=config.scheduler.single_flight,
    )

    mode = config.scheduler.mode
    if args.immediately:
        mode = "immediate"
    elif args.interval is not None:
        mode = "interval"

    try:
        if mode == "immediate":
            scheduler.start_immediately()
        elif mode == "interval":
            minutes = args.interval if args.interval is not None else config.scheduler.interval_minutes
            scheduler.start_with_custom_interval(minutes)
        else:
            if config.scheduler.run_on_start:
                scheduler.run_once()
            scheduler.start_at_next_hour_boundary()
    except SchedulingError as e:
        print(f"Error: could not start scheduler: {e}", file=sys.stderr)
        return 1

    print(scheduler.status(), file=sys.stderr)
    try:
        while scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping...", file=sys.stderr)
    finally:
        scheduler.stop()

    return 0


def cmd_once(args: argparse.Namespace, config: SentimentConfig) -> int:
    """Run a single cycle and print what it found."""
    report = build_pipeline(config).run_cycle()
    print_report(report)
    return 0 if report.is_healthy else 1


def cmd_changes(args: argparse.Namespace, config: SentimentConfig) -> int:
    """Show stored signal changes."""
    history = SignalChangeHistory(config.storage.data_dir)

    if args.pair:
        if args.hours is not None:
            events = history.within_hours(args.pair, args.hours)
        else:
            events = history.history_for(args.pair)
    else:
        events = sorted(history.load_all(), key=lambda e: e.change_time, reverse=True)
        if args.hours is not None:
            events = [e for e in events if e.is_within_hours(args.hours)]

    events = events[:args.limit]
    if not events:
        print("No signal changes found.")
        return 0

    now = datetime.now()
    for event in events:
        icon = combined_icon(event.importance, event.actuality(now))
        print(
            f"{icon} {event.change_time:%Y-%m-%d %H:%M} {event.currency_pair:<8} "
            f"{event.detailed_description} [{IMPORTANCE_DISPLAY[event.importance].label}]"
        )
    return 0


def cmd_stats(args: argparse.Namespace, config: SentimentConfig) -> int:
    """Show stored data statistics."""
    files = DataFileStore(config.storage.data_dir)
    data_files = files.list_data_files()
    print(f"Data directory: {files.data_dir}")
    print(f"Daily files:    {len(data_files)}")
    if data_files:
        print(f"Latest file:    {data_files[0].name}")
    print(f"Records today:  {len(files.read_today())}")
    print()
    print(SignalChangeHistory(config.storage.data_dir).statistics().format())
    return 0


def cmd_test_email(args: argparse.Namespace, config: SentimentConfig) -> int:
    """Check the SMTP settings, then send a test mail unless --connect-only."""
    engine = create_notification_engine(config.notifications, config.storage.data_dir)

    result = engine.test_connection()
    print(result.message)
    if result.success and not args.connect_only:
        result = engine.send_test_email()
        print(result.message)

    print()
    print(engine.statistics())
    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="fxsentiment",
        description="Retail FX sentiment collector",
    )
    parser.add_argument("-c", "--config", help="Path to TOML config file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Run command
    run_parser = subparsers.add_parser("run", help="Collect on a schedule until interrupted")
    mode = run_parser.add_mutually_exclusive_group()
    mode.add_argument("--immediately", action="store_true", help="First run now, then hourly")
    mode.add_argument("--interval", type=float, metavar="MINUTES", help="First run now, then every MINUTES")
    run_parser.set_defaults(func=cmd_run)

    # Once command
    once_parser = subparsers.add_parser("once", help="Run a single collection cycle")
    once_parser.set_defaults(func=cmd_once)

    # Changes command
    changes_parser = subparsers.add_parser("changes", help="Show signal changes")
    changes_parser.add_argument("pair", nargs="?", help="Currency pair, e.g. EUR/USD")
    changes_parser.add_argument("--hours", type=float, help="Only changes within the last N hours")
    changes_parser.add_argument("-n", "--limit", type=int, default=20, help="Number of changes")
    changes_parser.set_defaults(func=cmd_changes)

    # Stats command
    stats_parser = subparsers.add_parser("stats", help="Show stored data statistics")
    stats_parser.set_defaults(func=cmd_stats)

    # Test email command
    email_parser = subparsers.add_parser("test-email", help="Check SMTP settings and send a test mail")
    email_parser.add_argument("--connect-only", action="store_true", help="Only connect and log in")
    email_parser.set_defaults(func=cmd_test_email)

    args = parser.parse_args(argv)

    load_dotenv()
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(config)
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
