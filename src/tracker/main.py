"""CLI entry point for the collection tracker.

Usage:
    python -m src.tracker.main sync --force --threads 4 --batch-size 20
    python -m src.tracker.main trends --min-change 10 --vinyl
    python -m src.tracker.main demand --min-wants 100 --type sell
    python -m src.tracker.main list --search "miles davis"
    python -m src.tracker.main history 249504 --days 90
    python -m src.tracker.main value --top 20 --by-format
    python -m src.tracker.main migrate --status
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone

from src.common.config import Settings
from src.common.logging import setup_logging

from .analytics.engine import AnalyticsEngine
from .database.migrations import SchemaMigrator
from .database.models import Item
from .database.store import PriceStore
from .discogs.client import DiscogsClient
from .sync.orchestrator import SyncOrchestrator
from .sync.price_fetcher import PriceFetcher

logger = logging.getLogger(__name__)


def _format_money(value: float, currency: str = "USD") -> str:
    return f"{value:,.2f} {currency}"


def _truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


def _item_label(item: Item) -> str:
    return f"{_truncate(item.artist, 25)} - {_truncate(item.title, 35)}"


def _format_filter(args: argparse.Namespace) -> str | None:
    if getattr(args, "vinyl", False):
        return "Vinyl"
    if getattr(args, "cd", False):
        return "CD"
    return getattr(args, "format", None)


# --- Commands ---


def cmd_sync(args: argparse.Namespace, settings: Settings) -> int:
    if not settings.is_configured:
        logger.error(
            "Discogs credentials missing: set DISCOGS_TOKEN and DISCOGS_USERNAME"
        )
        return 1

    def progress(completed: int, total: int) -> None:
        logger.info(
            "Fetching prices... %d/%d (%d%%)",
            completed, total, round(completed / total * 100),
        )

    fetcher = PriceFetcher(settings.discogs, settings.sync)
    with PriceStore.open(settings.database_abs_path) as store, DiscogsClient(
        settings.discogs, rate_limiter=fetcher.rate_limiter
    ) as client:
        orchestrator = SyncOrchestrator(store, client, settings, fetcher=fetcher)
        summary = orchestrator.sync(
            force=args.force,
            workers=args.threads,
            batch_size=args.batch_size,
            on_progress=progress,
        )

    print(
        f"\nSynced {summary.collection_items} collection items, {summary.wants} wants"
    )
    print(
        f"Prices: {summary.processed} updated, {summary.skipped} fresh, "
        f"{summary.no_data} without listings, {summary.failed} failed"
    )
    print(f"Sync completed at {datetime.now(timezone.utc):%Y-%m-%d %H:%M:%S} UTC\n")
    return 0


def cmd_trends(args: argparse.Namespace, settings: Settings) -> int:
    min_change = (
        args.min_change
        if args.min_change is not None
        else settings.tracking.min_price_change_percent
    )
    format_filter = _format_filter(args)

    with PriceStore.open(settings.database_abs_path) as store:
        engine = AnalyticsEngine(store, settings.tracking)
        if args.all:
            trends = engine.price_changes(min_change, format_filter, args.limit)
        else:
            trends = engine.increasing_value(min_change, format_filter, args.limit)

    suffix = f" for {format_filter}" if format_filter else ""
    if not trends:
        print(f"\nNo releases found with price change >= {min_change}%{suffix}\n")
        return 0

    title = "All Price Changes" if args.all else "Increasing Value Records"
    print(f"\n{title}{suffix} (>= {min_change}% change):\n")
    for t in trends:
        print(
            f"  {_item_label(t.item):<63} "
            f"{t.previous_price:>10.2f} -> {t.current_price:>10.2f}  "
            f"{t.percentage_change:+.1f}%"
        )

    potential = sum(t.price_change for t in trends if t.price_change > 0)
    if potential > 0:
        print(f"\nTotal potential profit: {_format_money(potential)}")
    print()
    return 0


def cmd_demand(args: argparse.Namespace, settings: Settings) -> int:
    format_filter = _format_filter(args)
    with PriceStore.open(settings.database_abs_path) as store:
        engine = AnalyticsEngine(store, settings.tracking)

        if args.type in ("demand", "both"):
            demand = engine.high_demand(args.min_wants, format_filter)
            print(f"\nHigh Demand Records (>= {args.min_wants} wants)\n")
            if not demand:
                print(f"No records found with >= {args.min_wants} wants")
            for d in demand[: args.limit]:
                print(
                    f"  {_item_label(d.item):<63} {d.current_price:>10.2f} "
                    f"{d.wants_count:>6} wants  score {d.demand_score:.2f}"
                )
            if demand:
                print(
                    f"\nShowing {min(len(demand), args.limit)} of "
                    f"{len(demand)} high-demand records"
                )

        if args.type in ("sell", "both"):
            candidates = engine.sell_candidates(
                min_wants=args.min_wants,
                min_price_change=args.min_price_change,
                format_filter=format_filter,
                limit=args.limit,
            )
            print("\nOptimal Sell Candidates\n")
            if not candidates:
                print("No optimal sell candidates found with your criteria")
            for c in candidates:
                print(
                    f"  {_item_label(c.item):<63} {c.current_price:>10.2f} "
                    f"{c.wants_count:>6} wants  {c.price_change_percent or 0:+.1f}%  "
                    f"score {c.sell_score:.1f}"
                )
            if candidates:
                total = sum(c.current_price for c in candidates)
                print(f"\nTotal potential value: {_format_money(total)}")
                print("Sell score factors: 40% wants + 30% price trend + 30% current price")

        print("\nCollection Summary\n")
        for folder in store.collection_folders():
            print(f"  {folder.folder_name}: {folder.count} items")
        print(f"  Wantlist: {store.wants_count()} items\n")
    return 0


def cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    format_filter = _format_filter(args)
    with PriceStore.open(settings.database_abs_path) as store:
        if args.search:
            items = store.search_items(args.search, format_filter)
        else:
            items = store.all_items(format_filter)

    if not items:
        print("\nNo releases found\n")
        return 0

    print(f"\nFound {len(items)} releases:\n")
    for item in items:
        year = item.year or "----"
        print(f"  {item.id:>10}  {year}  {_item_label(item):<63} {item.format}")
    print()
    return 0


def cmd_history(args: argparse.Namespace, settings: Settings) -> int:
    with PriceStore.open(settings.database_abs_path) as store:
        item = store.get_item(args.release_id)
        if item is None:
            logger.error("Release %d not found in your collection", args.release_id)
            return 1
        engine = AnalyticsEngine(store, settings.tracking)
        history = engine.history(args.release_id, args.days)

    if not history:
        print("\nNo price history found for this release\n")
        return 0

    print(f"\nPrice History for: {item.artist} - {item.title}\n")
    for obs in history:
        print(
            f"  {obs.timestamp:<22} {_format_money(obs.price, obs.currency):>16}  "
            f"{obs.condition:<12} {obs.listing_count:>4} listings  "
            f"{obs.wants_count:>5} wants"
        )

    change = AnalyticsEngine.history_change(history)
    if change is not None:
        percent = (
            f" ({change.change_percent:+.2f}%)"
            if change.change_percent is not None else ""
        )
        print(
            f"\nPrice change over {args.days} days: "
            f"{_format_money(change.change)}{percent}"
        )
    print()
    return 0


def cmd_value(args: argparse.Namespace, settings: Settings) -> int:
    with PriceStore.open(settings.database_abs_path) as store:
        stats = AnalyticsEngine(store, settings.tracking).collection_value(args.top)

    print("\nCollection Value Summary\n")
    print(f"Total Records: {stats.total_items}")
    print(f"Records with prices: {stats.priced_items} ({stats.priced_percent:.1f}%)")
    print(f"Records without prices: {stats.unpriced_items}\n")
    print(f"Total Value: {_format_money(stats.total_value)}")
    print(f"Average Value: {_format_money(stats.average_value)}")
    print(f"Median Value: {_format_money(stats.median_value)}")

    if args.by_format and stats.by_format:
        print("\nValue by Format\n")
        for f in stats.by_format:
            share = f.value / stats.total_value * 100 if stats.total_value else 0
            print(
                f"  {f.format:<20} {f.count:>4} records  "
                f"{_format_money(f.value):>16}  ({share:.1f}%)"
            )

    if stats.most_valuable:
        print(f"\nTop {args.top} Most Valuable Records\n")
        for rank, (item, price) in enumerate(stats.most_valuable, start=1):
            print(f"  {rank:>2}. {_format_money(price):>16} - {item.artist} - {item.title}")
    print()
    return 0


def cmd_migrate(args: argparse.Namespace, settings: Settings) -> int:
    with PriceStore.open(settings.database_abs_path, migrate=False) as store:
        migrator = SchemaMigrator(store.connection)

        if args.status:
            status = migrator.status()
            print("\nDatabase Migration Status\n")
            print(f"Current version: {status.current_version}")
            print(f"Latest version: {status.latest_version}")
            print(f"Status: {'Up to date' if status.up_to_date else 'Needs migration'}")
            print("\nMigrations:")
            for migration, applied in status.migrations:
                mark = "x" if applied else " "
                print(f"  [{mark}] v{migration.version}: {migration.name}")
            print()
        elif args.rollback is not None:
            reverted = migrator.rollback(args.rollback)
            print(f"\nRolled back {len(reverted)} migrations to version {args.rollback}\n")
        else:
            applied = migrator.migrate()
            print(f"\nApplied {len(applied)} migrations\n")
    return 0


COMMANDS = {
    "sync": cmd_sync,
    "trends": cmd_trends,
    "demand": cmd_demand,
    "list": cmd_list,
    "history": cmd_history,
    "value": cmd_value,
    "migrate": cmd_migrate,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Track Discogs collection prices and marketplace demand"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", type=str, help="Path to settings YAML")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("sync", help="Sync collection and fetch current prices")
    p.add_argument("-f", "--force", action="store_true",
                   help="Refresh prices even if recently checked")
    p.add_argument("-t", "--threads", type=int, help="Number of worker threads")
    p.add_argument("-b", "--batch-size", type=int, help="Tasks per batch")

    p = sub.add_parser("trends", help="Show records with changing prices")
    p.add_argument("-m", "--min-change", type=float,
                   help="Minimum price change percentage")
    p.add_argument("-a", "--all", action="store_true",
                   help="Show all price changes, including decreases")
    p.add_argument("-l", "--limit", type=int, help="Number of results to show")
    _add_format_options(p)

    p = sub.add_parser("demand", help="Analyse demand and sell candidates")
    p.add_argument("-w", "--min-wants", type=int, default=50,
                   help="Minimum wants count (default: 50)")
    p.add_argument("-p", "--min-price-change", type=float, default=0.0,
                   help="Minimum price change percentage (default: 0)")
    p.add_argument("-l", "--limit", type=int, default=20,
                   help="Number of results to show (default: 20)")
    p.add_argument("-t", "--type", choices=["demand", "sell", "both"], default="both")
    p.add_argument("-f", "--format", type=str, help="Filter by format")

    p = sub.add_parser("list", help="List releases in the store")
    p.add_argument("-s", "--search", type=str, help="Search by artist or title")
    p.add_argument("-f", "--format", type=str, help="Filter by format")

    p = sub.add_parser("history", help="Show price history for a release")
    p.add_argument("release_id", type=int, help="Discogs release ID")
    p.add_argument("-d", "--days", type=int, default=30,
                   help="Number of days to show (default: 30)")

    p = sub.add_parser("value", help="Show collection value statistics")
    p.add_argument("-t", "--top", type=int, default=10,
                   help="Show top N most valuable records (default: 10)")
    p.add_argument("-f", "--by-format", action="store_true",
                   help="Show value breakdown by format")

    p = sub.add_parser("migrate", help="Database migration commands")
    group = p.add_mutually_exclusive_group()
    group.add_argument("-s", "--status", action="store_true", help="Show migration status")
    group.add_argument("-r", "--rollback", type=int, help="Roll back to a version")

    return parser


def _add_format_options(p: argparse.ArgumentParser) -> None:
    group = p.add_mutually_exclusive_group()
    group.add_argument("-f", "--format", type=str,
                       help='Filter by format (e.g., "Vinyl", "CD")')
    group.add_argument("--vinyl", action="store_true", help="Only vinyl records")
    group.add_argument("--cd", action="store_true", help="Only CD releases")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.debug else logging.INFO)
    settings = Settings.load(args.config)

    try:
        return COMMANDS[args.command](args, settings)
    except Exception as exc:
        logger.error("%s failed: %s", args.command, exc)
        logger.debug("Traceback", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
