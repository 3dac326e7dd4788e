"""
Due-target selection, batch isolation and outcome reporting
"""

import unittest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from crawler.db import ConnectionPool
from crawler.locator import PageLocator
from crawler.monitor import Monitor, MonitorResult
from detection.alerts import CollectingAlertSink
from detection.models import Change, Significance
from extraction.models import Category, PricingFacts
from extraction.pricing import PricingStrategy
from scheduling.memory_storage import InMemoryTargetSource
from scheduling.mysql_storage import MySQLTargetSource
from scheduling.models import CrawlFrequency, CrawlOutcome, MonitoredTarget
from scheduling.orchestrator import Scheduler, combine_outcomes
from snapshot.models import Snapshot
from snapshot.mysql_storage import MySQLSnapshotStore
from tests.fakes import FakeConnection, FakeFetcher

NOW = datetime(2026, 3, 2, 8, 0, 0)

PRICING_PAGE = """
<div class="pricing-card"><h3>Basic</h3><span class="price">990 Kč</span></div>
<div class="pricing-card"><h3>Pro</h3><span class="price">1 990 Kč</span></div>
"""


def make_snapshot(target_id, changes=(), category=Category.PRICING):
    changes = tuple(changes)
    significance = max((c.significance for c in changes if c.significance), default=None)
    return Snapshot(
        target_id=target_id,
        category=category,
        content_hash="h%d" % len(changes),
        facts=PricingFacts(),
        changes=changes,
        significance=significance,
    )


class TestCrawlFrequency(unittest.TestCase):

    def test_intervals(self):
        self.assertEqual(CrawlFrequency.DAILY.days, 1)
        self.assertEqual(CrawlFrequency.WEEKLY.days, 7)
        self.assertEqual(CrawlFrequency.BIWEEKLY.days, 14)
        self.assertEqual(CrawlFrequency.MONTHLY.days, 30)

    def test_is_due(self):
        daily = CrawlFrequency.DAILY
        self.assertTrue(daily.is_due(None, NOW))
        self.assertFalse(daily.is_due(NOW - timedelta(hours=23), NOW))
        self.assertTrue(daily.is_due(NOW - timedelta(days=1), NOW))
        self.assertFalse(CrawlFrequency.MONTHLY.is_due(NOW - timedelta(days=29), NOW))

    def test_parse(self):
        self.assertEqual(CrawlFrequency.parse("Biweekly"), CrawlFrequency.BIWEEKLY)
        self.assertEqual(CrawlFrequency.parse("hourly"), CrawlFrequency.WEEKLY)

    def test_combine_outcomes(self):
        S, N, F = CrawlOutcome.SNAPSHOT, CrawlOutcome.NO_DATA, CrawlOutcome.FAILED
        self.assertEqual(combine_outcomes([S, F]), F)
        self.assertEqual(combine_outcomes([N, S]), S)
        self.assertEqual(combine_outcomes([N, N]), N)
        self.assertEqual(combine_outcomes([]), N)


class TestScheduler(unittest.TestCase):

    def setUp(self):
        self.fresh = MonitoredTarget(1, "fresh.cz", frequency=CrawlFrequency.WEEKLY)
        self.stale = MonitoredTarget(2, "stale.cz", frequency=CrawlFrequency.DAILY,
                                     last_crawled_at=NOW - timedelta(days=2))
        self.recent = MonitoredTarget(3, "recent.cz", frequency=CrawlFrequency.MONTHLY,
                                      last_crawled_at=NOW - timedelta(days=3))
        self.inactive = MonitoredTarget(4, "inactive.cz", active=False)
        self.source = InMemoryTargetSource([self.fresh, self.stale, self.recent, self.inactive])

        self.monitor = MagicMock()
        self.monitor.run.side_effect = lambda target: MonitorResult(
            CrawlOutcome.SNAPSHOT, snapshot=make_snapshot(target.target_id)
        )
        self.sink = CollectingAlertSink()
        self.scheduler = Scheduler(self.source, {Category.PRICING: self.monitor},
                                   alert_sink=self.sink, max_workers=2)

    def test_due_targets(self):
        due = self.scheduler.due_targets(NOW)
        self.assertEqual([t.domain for t in due], ["fresh.cz", "stale.cz"])

    def test_run_records_one_outcome_per_target(self):
        report = self.scheduler.run_due([Category.PRICING], now=NOW)

        self.assertEqual(report.targets, 2)
        self.assertEqual(report.snapshots, 2)
        self.assertEqual(report.failures, 0)
        self.assertEqual(sorted(a[0] for a in self.source.attempts), [1, 2])
        self.assertEqual(self.source.get(1).last_crawled_at, NOW)
        self.assertEqual(self.source.get(2).last_crawled_at, NOW)
        self.assertEqual(self.source.get(3).last_crawled_at, NOW - timedelta(days=3))

    def test_failing_target_does_not_affect_others(self):
        def run(target):
            if target.target_id == 1:
                raise RuntimeError("parser exploded")
            return MonitorResult(CrawlOutcome.SNAPSHOT, snapshot=make_snapshot(target.target_id))
        self.monitor.run.side_effect = run

        with self.assertLogs("monitor", level="ERROR"):
            report = self.scheduler.run_due([Category.PRICING], now=NOW)

        self.assertEqual(report.targets, 2)
        self.assertEqual(report.failures, 1)
        self.assertEqual(report.snapshots, 1)
        outcomes = {a[0]: a[1] for a in self.source.attempts}
        self.assertEqual(outcomes, {1: CrawlOutcome.FAILED, 2: CrawlOutcome.SNAPSHOT})
        # A failed crawl is retried next cycle
        self.assertIsNone(self.source.get(1).last_crawled_at)
        self.assertEqual(self.source.failures[1], 1)

    def test_fetch_failure_does_not_advance(self):
        self.monitor.run.side_effect = lambda target: MonitorResult(CrawlOutcome.FAILED, error="timeout")
        report = self.scheduler.run_due([Category.PRICING], now=NOW)
        self.assertEqual(report.failures, 2)
        self.assertEqual(len(report.errors), 2)
        self.assertEqual(self.source.get(2).last_crawled_at, NOW - timedelta(days=2))

    def test_no_data_advances(self):
        self.monitor.run.side_effect = lambda target: MonitorResult(CrawlOutcome.NO_DATA)
        report = self.scheduler.run_due([Category.PRICING], now=NOW)
        self.assertEqual(report.no_data, 2)
        self.assertEqual(self.source.get(1).last_crawled_at, NOW)

    def test_any_failed_category_fails_target(self):
        services = MagicMock()
        services.run.return_value = MonitorResult(CrawlOutcome.FAILED, error="timeout")
        scheduler = Scheduler(self.source, {Category.PRICING: self.monitor, Category.SERVICES: services})

        scheduler.run_due([Category.PRICING, Category.SERVICES], target_id=3, now=NOW)

        self.assertEqual(self.source.attempts, [(3, CrawlOutcome.FAILED, NOW)])

    def test_target_filter_runs_even_if_not_due(self):
        report = self.scheduler.run_due([Category.PRICING], target_id=3, now=NOW)
        self.assertEqual(report.targets, 1)
        self.monitor.run.assert_called_once_with(self.recent)

    def test_target_filter_skips_inactive_and_unknown(self):
        with self.assertLogs("monitor", level="WARNING"):
            self.assertEqual(self.scheduler.run_due([Category.PRICING], target_id=4, now=NOW).targets, 0)
            self.assertEqual(self.scheduler.run_due([Category.PRICING], target_id=99, now=NOW).targets, 0)
        self.monitor.run.assert_not_called()

    def test_limit(self):
        report = self.scheduler.run_due([Category.PRICING], limit=1, now=NOW)
        self.assertEqual(report.targets, 1)

    def test_unknown_category(self):
        with self.assertRaises(ValueError):
            self.scheduler.run_due([Category.PORTFOLIO], now=NOW)

    def test_alerts_respect_min_significance(self):
        changes = [
            Change("price_min", 1000.0, 1200.0, Significance.HIGH),
            Change("page_title", "Ceník", "Ceník 2026", Significance.LOW),
        ]
        self.monitor.run.side_effect = lambda target: MonitorResult(
            CrawlOutcome.SNAPSHOT,
            snapshot=make_snapshot(target.target_id, changes if target.target_id == 2 else ()),
        )

        report = self.scheduler.run_due([Category.PRICING], min_significance=Significance.HIGH, now=NOW)

        self.assertEqual(len(self.sink.events), 1)
        event = self.sink.events[0]
        self.assertEqual(event.target_id, 2)
        self.assertEqual(event.domain, "stale.cz")
        self.assertEqual([c.field for c in event.changes], ["price_min"])
        self.assertEqual(report.alerts, 1)
        self.assertEqual(report.changed, 1)
        self.assertEqual([row["field"] for row in report.significant], ["price_min"])

    def test_dry_run_records_nothing(self):
        scheduler = Scheduler(self.source, {Category.PRICING: self.monitor}, dry_run=True)
        scheduler.run_due([Category.PRICING], now=NOW)
        self.assertEqual(self.source.attempts, [])

    def test_cleanup_prunes_every_stored_pair(self):
        store = self.monitor.store
        store.keys.return_value = [(1, Category.PRICING), (4, Category.PRICING), (2, Category.SERVICES)]
        store.delete_older_than.return_value = 2

        removed = self.scheduler.cleanup(5)

        # Inactive targets keep no more history than active ones; unmonitored categories are left alone
        self.assertEqual(removed, 4)
        store.delete_older_than.assert_any_call(4, Category.PRICING, 5)
        self.assertEqual(store.delete_older_than.call_count, 2)

    def test_cleanup_visits_a_shared_store_once(self):
        services = MagicMock()
        services.store = self.monitor.store
        self.monitor.store.keys.return_value = [(1, Category.PRICING), (1, Category.SERVICES)]
        self.monitor.store.delete_older_than.return_value = 1
        scheduler = Scheduler(self.source, {Category.PRICING: self.monitor, Category.SERVICES: services})

        self.assertEqual(scheduler.cleanup(3), 2)
        self.monitor.store.keys.assert_called_once()


class TestSchedulerOverMySQL(unittest.TestCase):
    """Concurrent workers against the MySQL stores sharing one connection pool."""

    def setUp(self):
        self.connections = []
        target_rows = [(i, f"agency{i}.cz", None, "daily", None, 1, None) for i in range(1, 5)]

        def connect(**kwargs):
            conn = FakeConnection(rows={"FROM monitored_targets": target_rows})
            self.connections.append(conn)
            return conn

        self.pool = ConnectionPool(size=4, connect=connect)
        pages = {f"https://agency{i}.cz/cenik": PRICING_PAGE for i in range(1, 5)}
        fetcher = FakeFetcher(pages=pages, probes={url: 200 for url in pages})
        monitor = Monitor(PricingStrategy(), fetcher, PageLocator(fetcher), MySQLSnapshotStore(self.pool))
        self.scheduler = Scheduler(MySQLTargetSource(self.pool), {Category.PRICING: monitor}, max_workers=4)

    def test_workers_never_share_a_connection(self):
        report = self.scheduler.run_due([Category.PRICING], now=NOW)

        self.assertEqual(report.targets, 4)
        self.assertEqual(report.snapshots, 4)
        self.assertEqual(report.failures, 0)
        self.assertTrue(self.connections)
        self.assertEqual([c.max_busy for c in self.connections], [1] * len(self.connections))
        # One commit per saved snapshot and one per recorded outcome
        self.assertEqual(sum(c.commits for c in self.connections), 8)
        self.assertEqual(sum(c.rollbacks for c in self.connections), 0)


class TestTargets(unittest.TestCase):

    def test_lookup_by_id_domain_or_url(self):
        target = MonitoredTarget(7, "agency.cz", canonical_url="https://www.agency.cz/")
        self.assertTrue(target.matches("7"))
        self.assertTrue(target.matches("agency.cz"))
        self.assertTrue(target.matches("https://www.agency.cz/cenik"))
        self.assertFalse(target.matches("other.cz"))
        self.assertEqual(target.base_url, "https://www.agency.cz")

    def test_find(self):
        source = InMemoryTargetSource([MonitoredTarget(7, "agency.cz")])
        self.assertEqual(source.find("www.agency.cz").target_id, 7)
        self.assertIsNone(source.find("nothing.cz"))


if __name__ == "__main__":
    unittest.main()
