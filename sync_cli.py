#!/usr/bin/env python3
"""
CLI Interface for the Listing Sync Jobs

Provides commands for:
- First-time import of a market from a scraper results file
- Daily incremental sync of a market against a fresh scraper results file
- Previewing the changes a sync would make
- Geocoding stored listings that are missing coordinates
- Viewing listing counts for a market

Usage:
    python sync_cli.py import results.json montgomery-al
    python sync_cli.py sync daily_montgomery.json montgomery-al
    python sync_cli.py diff daily_montgomery.json montgomery-al
    python sync_cli.py geocode --market montgomery-al
    python sync_cli.py status montgomery-al
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from sync_config.sync_config import SyncConfig, get_config
from sync_services.context import SyncContext, create_context, create_supabase_client
from sync_services.errors import SnapshotFormatError, StoreReadError
from sync_services.listing_transform import load_snapshot_file
from sync_services.sync_log import append_sync_log

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

_context: Optional[SyncContext] = None


def configure_logging(config: SyncConfig) -> None:
    """Log to the console and to the configured log file."""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(config.log_file)
        ]
    )


def get_context() -> SyncContext:
    """Build the process-wide service context on first use."""
    global _context
    if _context is None:
        _context = create_context(create_supabase_client(), get_config())
    return _context


def _validate_inputs(args, config: SyncConfig) -> bool:
    if not config.validate_market(args.market):
        print(f"Error: Invalid source market format: {args.market}")
        print("  Expected format: city-state (e.g., montgomery-al, birmingham-al)")
        return False
    if hasattr(args, 'file') and not Path(args.file).exists():
        print(f"Error: File not found: {args.file}")
        return False
    return True


def _print_errors(errors) -> None:
    if errors:
        print("\nErrors:")
        for index, error in enumerate(errors, 1):
            print(f"  {index}. {error}")


async def cmd_import(args) -> int:
    """Import a market from a scraper results file."""
    config = get_config()
    if not _validate_inputs(args, config):
        return 1

    print("\n" + "=" * 60)
    print(f"IMPORTING {args.market}")
    print("=" * 60)
    print(f"File: {args.file}")
    print(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    try:
        snapshots = load_snapshot_file(args.file)
    except SnapshotFormatError as e:
        print(f"\nError: {e}")
        return 1

    context = get_context()
    result = await context.reconciliation.import_market(args.market, snapshots)

    print("\n" + "-" * 60)
    print("RESULTS:")
    print("-" * 60)
    print(f"Status: {'Success' if result.success else 'Failed'}")
    print(f"Duration: {result.duration_seconds:.1f} seconds")
    print(f"Processed: {result.total_processed}")
    print(f"New Properties: {result.new_properties}")
    print(f"Updated Properties: {result.updated_properties}")
    print(f"Reactivated Properties: {result.reactivated_properties}")
    print(f"Skipped Duplicates: {result.skipped}")
    _print_errors(result.errors)

    log_file = append_sync_log({
        'sourceMarket': args.market,
        'filePath': str(args.file),
        'duration': round(result.duration_seconds, 2),
        'results': result.to_dict(),
    }, config.logs_dir, prefix='scraper-import')
    print(f"\nLogged to: {log_file}")

    return 0 if result.success else 1


async def cmd_sync(args) -> int:
    """Run an incremental sync of a market against a fresh scraper results file."""
    config = get_config()
    if not _validate_inputs(args, config):
        return 1

    print("\n" + "=" * 60)
    print(f"INCREMENTAL SYNC {args.market}")
    print("=" * 60)
    print(f"File: {args.file}")
    print(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    try:
        snapshots = load_snapshot_file(args.file)
    except SnapshotFormatError as e:
        print(f"\nError: {e}")
        return 1

    context = get_context()
    result = await context.reconciliation.sync_market(args.market, snapshots)

    print("\n" + "-" * 60)
    print("RESULTS:")
    print("-" * 60)
    print(f"Status: {'Success' if result.success else 'Failed'}")
    print(f"Duration: {result.duration_seconds:.1f} seconds")
    print(f"New Properties: {result.new_properties}")
    print(f"Reactivated Properties: {result.reactivated_properties}")
    print(f"Deactivated Properties: {result.deactivated_properties}")
    print(f"Refreshed Properties: {result.updated_properties}")
    _print_errors(result.errors)

    if result.deactivation_alert:
        print(f"\nALERT: {result.deactivated_properties} properties were deactivated - "
              f"this may indicate a scraping issue")

    log_file = append_sync_log({
        'sourceMarket': args.market,
        'filePath': str(args.file),
        'duration': round(result.duration_seconds, 2),
        'results': result.to_dict(),
        'analysis': result.analysis,
    }, config.logs_dir, prefix='scraper-sync')
    print(f"\nLogged to: {log_file}")

    return 0 if result.success else 1


async def cmd_diff(args) -> int:
    """Show what a sync would change without writing anything."""
    config = get_config()
    if not _validate_inputs(args, config):
        return 1

    try:
        snapshots = load_snapshot_file(args.file)
        diff = await get_context().reconciliation.compute_diff(args.market, snapshots)
    except (SnapshotFormatError, StoreReadError) as e:
        print(f"\nError: {e}")
        return 1

    print(f"\nChange Analysis for {args.market}:")
    print(f"  Current listings: {len(diff.current_urls)}")
    print(f"  New: {len(diff.new_records)} ({len(diff.relisted_urls)} relisted)")
    print(f"  Removed: {len(diff.removed_urls)}")
    print(f"  Unchanged: {len(diff.unchanged_urls)}")

    if args.verbose:
        for record in diff.new_records:
            print(f"  + {record.url}")
        for url in diff.removed_urls:
            print(f"  - {url}")

    return 0


async def cmd_geocode(args) -> int:
    """Geocode stored listings that are missing coordinates."""
    config = get_config()
    if args.market and not config.validate_market(args.market):
        print(f"Error: Invalid source market format: {args.market}")
        return 1

    print("\n" + "=" * 60)
    print("GEOCODING BACKFILL")
    print("=" * 60)

    report = await get_context().backfill.backfill_missing_coordinates(args.market)

    print(f"Successfully geocoded: {report.success}")
    print(f"Failed to geocode: {report.failure}")
    print(f"Skipped (incomplete address): {report.skipped}")
    print(f"Total processed: {report.total}")

    append_sync_log({
        'sourceMarket': args.market,
        'duration': round(report.duration_seconds, 2),
        'results': report.to_dict(),
    }, config.logs_dir, prefix='geocode-backfill')

    if not report.completed:
        _print_errors(report.errors)
        return 1
    return 0


async def cmd_status(args) -> int:
    """Show listing counts for a market."""
    config = get_config()
    if not config.validate_market(args.market):
        print(f"Error: Invalid source market format: {args.market}")
        return 1

    try:
        stats = get_context().store.market_stats(args.market)
    except StoreReadError as e:
        print(f"\nError: {e}")
        return 1

    print(f"\nListings in {args.market}:")
    print(f"  Total: {stats.total}")
    print(f"  Active: {stats.active}")
    print(f"  Inactive: {stats.inactive}")
    print(f"  Active without coordinates: {stats.missing_coordinates}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Scraped listing sync jobs',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s import results.json montgomery-al          First-time import of a market
  %(prog)s sync daily_montgomery.json montgomery-al   Daily incremental sync
  %(prog)s diff daily_montgomery.json montgomery-al   Preview a sync
  %(prog)s geocode --market montgomery-al             Backfill missing coordinates
  %(prog)s status montgomery-al                       Show listing counts
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    import_parser = subparsers.add_parser('import', help='Import a market from a scraper results file')
    import_parser.add_argument('file', help='Scraper results JSON file')
    import_parser.add_argument('market', help='Source market, e.g. montgomery-al')
    import_parser.set_defaults(func=cmd_import)

    sync_parser = subparsers.add_parser('sync', help='Incrementally sync a market')
    sync_parser.add_argument('file', help='Scraper results JSON file from the latest full scrape')
    sync_parser.add_argument('market', help='Source market, e.g. montgomery-al')
    sync_parser.set_defaults(func=cmd_sync)

    diff_parser = subparsers.add_parser('diff', help='Preview the changes a sync would make')
    diff_parser.add_argument('file', help='Scraper results JSON file')
    diff_parser.add_argument('market', help='Source market, e.g. montgomery-al')
    diff_parser.add_argument('--verbose', '-v', action='store_true', help='List the affected URLs')
    diff_parser.set_defaults(func=cmd_diff)

    geocode_parser = subparsers.add_parser('geocode', help='Geocode listings missing coordinates')
    geocode_parser.add_argument('--market', help='Limit to one source market')
    geocode_parser.set_defaults(func=cmd_geocode)

    status_parser = subparsers.add_parser('status', help='Show listing counts for a market')
    status_parser.add_argument('market', help='Source market, e.g. montgomery-al')
    status_parser.set_defaults(func=cmd_status)

    return parser


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(get_config())

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user.")
        return 130
    except RuntimeError as e:
        print(f"\nError: {e}")
        logger.exception("Command failed")
        return 1


if __name__ == '__main__':
    sys.exit(main())
