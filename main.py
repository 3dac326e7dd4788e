import sys
import time
import argparse

import pymysql

from crawler.config import DB_POOL_SIZE, LOG_FILE, MAX_WORKERS, SNAPSHOT_RETENTION
from crawler.db import ConnectionPool
from crawler.fetcher import ContentFetcher
from crawler.locator import PageLocator
from crawler.logger import attach_file_handler
from crawler.monitor import Monitor
from crawler.throttle import HostThrottle
from detection.alerts import CollectingAlertSink, LoggingAlertSink
from detection.engine import ChangeClassifier
from detection.models import Significance
from extraction import STRATEGIES
from extraction.models import Category
from scheduling.mysql_storage import MySQLTargetSource
from scheduling.orchestrator import Scheduler
from snapshot.mysql_storage import MySQLSnapshotStore

REQUIRED_TABLES = [
    "monitored_targets",
    "competitor_snapshots",
    "competitor_snapshot_latest",
]


def verify_schema_or_exit(connection):
    """
    Startup Guard: Verify all required database tables exist.
    If any table is missing, print clear error and exit cleanly.
    """
    try:
        with connection.cursor() as cursor:
            cursor.execute("SHOW TABLES")
            existing_tables = {row[0] for row in cursor.fetchall()}
    except pymysql.MySQLError as e:
        print(f"SCHEMA_VERIFICATION_ERROR: {e}")
        sys.exit(1)

    missing_tables = [table for table in REQUIRED_TABLES if table not in existing_tables]
    if missing_tables:
        print("\n" + "=" * 60)
        print("DATABASE NOT INITIALIZED")
        print("=" * 60)
        print("\nThe following required tables are missing:")
        for table in missing_tables:
            print(f"  - {table}")
        print("\nPlease run the database initialization script:")
        print("  mysql -u <user> -p <database> < database/init.sql")
        print("=" * 60 + "\n")
        sys.exit(1)


class MonitorSession:
    """
    One operator-triggered batch: wires the stores, the shared throttle and
    one Monitor per category, runs the due targets and prints a summary.
    """

    def __init__(self, args):
        self.args = args
        self.start_time = time.time()
        self.pool = self._get_db_pool(args.workers)

        # Both stores check connections out of the pool per call
        self.target_source = MySQLTargetSource(self.pool)
        self.snapshot_store = MySQLSnapshotStore(self.pool)

        # One throttle for the whole run, keyed per host
        self.throttle = HostThrottle()
        self.fetcher = ContentFetcher(throttle=self.throttle)
        self.locator = PageLocator(self.fetcher)
        self.classifier = ChangeClassifier()

        self.alert_sink = CollectingAlertSink() if args.dry_run else LoggingAlertSink()
        self.monitors = {
            category: Monitor(
                strategy,
                self.fetcher,
                self.locator,
                self.snapshot_store,
                self.classifier,
                dry_run=args.dry_run,
            )
            for category, strategy in STRATEGIES.items()
        }
        self.scheduler = Scheduler(
            self.target_source,
            self.monitors,
            alert_sink=self.alert_sink,
            max_workers=args.workers,
            dry_run=args.dry_run,
        )

    def _get_db_pool(self, workers):
        """Connection pool over the authoritative DB_CONFIG, one connection per busy worker."""
        pool = ConnectionPool(size=max(DB_POOL_SIZE, workers))
        try:
            with pool.connection() as conn:
                verify_schema_or_exit(conn)
        except pymysql.MySQLError as e:
            print(f"DATABASE_ERROR: Failed to connect to MySQL: {e}")
            sys.exit(1)
        return pool

    def run(self):
        categories = selected_categories(self.args.category)
        min_significance = Significance.parse(self.args.min_significance, Significance.LOW)

        target_id = None
        if self.args.target:
            target = self.target_source.find(self.args.target)
            if target is None:
                print(f"TARGET_NOT_FOUND: No monitored target matches '{self.args.target}'")
                return
            target_id = target.target_id

        report = self.scheduler.run_due(
            categories,
            target_id=target_id,
            min_significance=min_significance,
            limit=self.args.limit,
        )

        removed = None
        if self.args.cleanup is not None and not self.args.dry_run:
            removed = self.scheduler.cleanup(self.args.cleanup)

        self._print_summary(report, categories, removed)

    def close(self):
        self.pool.close()

    def _print_summary(self, report, categories, removed):
        duration = time.time() - self.start_time

        print("\n==============================")
        print("MONITOR RUN SUMMARY")
        print("==============================")
        print(f"Categories:        {', '.join(c.value for c in categories)}")
        print(f"Mode:              {'dry-run' if self.args.dry_run else 'live'}")
        print(f"Duration:          {duration:.2f} seconds")
        print(f"Targets processed: {report.targets}")
        print(f"Snapshots:         {report.snapshots}")
        print(f"  - with changes:  {report.changed}")
        print(f"No data:           {report.no_data}")
        print(f"Failed targets:    {report.failures}")
        print(f"Alerts emitted:    {report.alerts}")
        if removed is not None:
            print(f"Pruned snapshots:  {removed}")
        print("==============================")

        if report.significant:
            print("\nSIGNIFICANT CHANGES (HIGH / CRITICAL)")
            print(f"{'Domain':<28} {'Category':<10} {'Field':<28} {'Level':<9} Change")
            print("-" * 100)
            for row in report.significant:
                print(
                    f"{row['domain'][:28]:<28} {row['category']:<10} {row['field'][:28]:<28} "
                    f"{row['significance'].label:<9} {_short(row['before'])} -> {_short(row['after'])}"
                )

        if report.errors:
            print("\nFAILURES")
            for row in report.errors:
                print(f"  - {row['domain']} [{row['category']}]: {row['error']}")
        print()


def selected_categories(value):
    if not value or value == "all":
        return list(Category)
    return [Category(value)]


def _short(value, limit=40):
    text = "-" if value is None else str(value)
    return text if len(text) <= limit else text[:limit - 3] + "..."


def build_parser():
    parser = argparse.ArgumentParser(description="Competitor website monitor")
    parser.add_argument("--category", choices=[c.value for c in Category] + ["all"], default="all",
                        help="Category to monitor")
    parser.add_argument("--target", help="Only this target (id, domain or URL), even if not due")
    parser.add_argument("--min-significance", choices=[s.value for s in Significance], default="low",
                        help="Lowest change significance that triggers an alert")
    parser.add_argument("--limit", type=int, help="Maximum number of due targets")
    parser.add_argument("--workers", type=int, default=MAX_WORKERS, help="Parallel target workers")
    parser.add_argument("--dry-run", action="store_true", help="Detect changes without saving anything")
    parser.add_argument("--cleanup", type=int, nargs="?", const=SNAPSHOT_RETENTION, metavar="KEEP",
                        help="Prune snapshot history to KEEP per category after the run")
    parser.add_argument("--log-file", default=LOG_FILE, help="Also write logs to this file")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    if args.log_file:
        attach_file_handler(args.log_file)

    session = MonitorSession(args)
    try:
        session.run()
    finally:
        session.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
