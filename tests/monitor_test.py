"""
Monitor: locate, extract, hash and diff against the latest snapshot
"""

import threading
import time
import unittest
from unittest.mock import MagicMock

from crawler.monitor import Monitor, pair_lock
from crawler.locator import PageLocator
from detection.models import Significance
from extraction.models import Category
from extraction.portfolio import PortfolioStrategy
from extraction.pricing import PricingStrategy
from extraction.services import ServicesStrategy
from scheduling.models import CrawlOutcome, MonitoredTarget
from snapshot.memory_storage import InMemorySnapshotStore
from tests.fakes import FakeFetcher

BASE = "https://agency.cz"
PRICING_URL = BASE + "/cenik"

PRICING_V1 = """
<html><head><title>Ceník</title></head><body>
<div class="pricing-card"><h3>Basic</h3><span class="price">1 000 Kč</span></div>
<div class="pricing-card"><h3>Pro</h3><span class="price">2 000 Kč</span></div>
</body></html>
"""

PRICING_V2 = """
<html><head><title>Ceník</title></head><body>
<div class="pricing-card"><h3>Basic</h3><span class="price">1 200 Kč</span></div>
<div class="pricing-card"><h3>Pro</h3><span class="price">2 000 Kč</span></div>
<div class="pricing-card"><h3>Enterprise</h3><span class="price">5 000 Kč</span></div>
</body></html>
"""


class SlowSnapshotStore(InMemorySnapshotStore):
    """Holds the read open long enough for an overlapping run to interleave."""

    def find_latest(self, target_id, category):
        latest = super().find_latest(target_id, category)
        time.sleep(0.05)
        return latest


class TestMonitor(unittest.TestCase):

    def setUp(self):
        self.target = MonitoredTarget(target_id=1, domain="agency.cz")
        self.store = InMemorySnapshotStore()
        self.fetcher = FakeFetcher(pages={PRICING_URL: PRICING_V1}, probes={PRICING_URL: 200})

    def monitor(self, strategy=None, **kwargs):
        return Monitor(
            strategy or PricingStrategy(),
            self.fetcher,
            PageLocator(self.fetcher),
            self.store,
            **kwargs
        )

    def test_first_snapshot_has_no_changes(self):
        snapshot = self.monitor().create_snapshot(self.target)

        self.assertIsNotNone(snapshot)
        self.assertEqual(snapshot.changes, ())
        self.assertIsNone(snapshot.significance)
        self.assertIsNone(snapshot.previous_snapshot_id)
        self.assertTrue(snapshot.is_first)
        self.assertEqual(snapshot.source_url, PRICING_URL)
        self.assertEqual(snapshot.metrics["packages_count"], 2)
        self.assertIs(self.store.find_latest(1, Category.PRICING), snapshot)

    def test_unchanged_page_is_idempotent(self):
        monitor = self.monitor()
        first = monitor.create_snapshot(self.target)
        second = monitor.create_snapshot(self.target)

        self.assertEqual(first.content_hash, second.content_hash)
        self.assertEqual(second.changes, ())
        self.assertEqual(second.previous_snapshot_id, first.snapshot_id)
        self.assertEqual(self.store.count(1, Category.PRICING), 2)
        self.assertIs(self.store.find_latest(1, Category.PRICING), second)

    def test_changed_page_is_diffed(self):
        monitor = self.monitor()
        first = monitor.create_snapshot(self.target)
        self.fetcher.pages[PRICING_URL] = PRICING_V2

        second = monitor.create_snapshot(self.target)

        self.assertNotEqual(first.content_hash, second.content_hash)
        self.assertEqual(second.previous_hash, first.content_hash)
        fields = {c.field: c for c in second.changes}
        self.assertEqual(fields["package_price_Basic"].significance, Significance.HIGH)
        self.assertEqual(fields["packages_count"].significance, Significance.MEDIUM)
        self.assertEqual(fields["price_max"].significance, Significance.HIGH)
        self.assertEqual(second.significance, Significance.HIGH)
        self.assertTrue(second.should_alert())

    def test_unreachable_target(self):
        self.fetcher.down = {PRICING_URL, BASE}
        self.fetcher.probes = {}

        result = self.monitor().run(self.target)

        self.assertEqual(result.outcome, CrawlOutcome.FAILED)
        self.assertIsNone(result.snapshot)
        self.assertIn("connection_error", result.error)
        self.assertIsNone(self.monitor().create_snapshot(self.target))
        self.assertEqual(self.store.keys(), [])

    def test_page_found_but_fetch_fails(self):
        self.fetcher.pages = {}
        result = self.monitor().run(self.target)
        self.assertEqual(result.outcome, CrawlOutcome.FAILED)
        self.assertEqual(self.store.keys(), [])

    def test_empty_extraction_never_overwrites(self):
        monitor = self.monitor()
        first = monitor.create_snapshot(self.target)
        self.fetcher.pages[PRICING_URL] = "<html><body><p>Připravujeme</p></body></html>"

        result = monitor.run(self.target)

        self.assertEqual(result.outcome, CrawlOutcome.NO_DATA)
        self.assertIsNone(result.snapshot)
        self.assertIs(self.store.find_latest(1, Category.PRICING), first)
        self.assertEqual(self.store.count(1, Category.PRICING), 1)

    def test_no_category_page_is_no_data(self):
        self.fetcher.probes = {}
        self.fetcher.pages = {BASE: "<a href='/kontakt'>Kontakt</a>"}

        result = self.monitor(PortfolioStrategy()).run(self.target)

        self.assertEqual(result.outcome, CrawlOutcome.NO_DATA)

    def test_target_without_url_is_skipped(self):
        result = self.monitor().run(MonitoredTarget(target_id=2, domain=""))
        self.assertEqual(result.outcome, CrawlOutcome.NO_DATA)
        self.assertEqual(self.fetcher.calls, [])

    def test_services_fall_back_to_homepage(self):
        self.fetcher.probes = {}
        self.fetcher.pages = {
            BASE: "<div class='service'><h3>SEO</h3></div><p>Stavíme na WordPress.</p>",
        }

        snapshot = self.monitor(ServicesStrategy()).create_snapshot(self.target)

        self.assertEqual(snapshot.source_url, BASE)
        self.assertEqual([s.name for s in snapshot.facts.services], ["SEO"])
        self.assertEqual(snapshot.facts.technologies, frozenset({"WordPress"}))
        # The homepage scanned for links is the page extracted; one GET only
        self.assertEqual(self.fetcher.requested("GET"), [BASE])

    def test_services_found_via_homepage_link_reuse_homepage(self):
        services_url = BASE + "/nabidka"
        self.fetcher.probes = {}
        self.fetcher.pages = {
            BASE: "<a href='/nabidka'>Naše služby</a><p>Certifikace Google Partner.</p>",
            services_url: "<div class='service'><h3>PPC</h3></div>",
        }

        snapshot = self.monitor(ServicesStrategy()).create_snapshot(self.target)

        self.assertEqual(snapshot.source_url, services_url)
        self.assertEqual(snapshot.facts.certifications, frozenset({"Google Partner"}))
        self.assertEqual(self.fetcher.requested("GET"), [BASE, services_url])

    def test_services_homepage_failure_fails_run(self):
        services_url = BASE + "/sluzby"
        self.fetcher.probes = {services_url: 200}
        self.fetcher.pages = {services_url: "<div class='service'><h3>SEO</h3></div>"}
        self.fetcher.down = {BASE}

        result = self.monitor(ServicesStrategy()).run(self.target)

        self.assertEqual(result.outcome, CrawlOutcome.FAILED)

    def test_dry_run_persists_nothing(self):
        snapshot = self.monitor(dry_run=True).create_snapshot(self.target)
        self.assertIsNotNone(snapshot)
        self.assertIsNone(self.store.find_latest(1, Category.PRICING))

    def test_hash_change_without_field_change_is_reported(self):
        classifier = MagicMock()
        classifier.diff.return_value = []
        monitor = self.monitor(classifier=classifier)
        monitor.create_snapshot(self.target)
        self.fetcher.pages[PRICING_URL] = PRICING_V2

        snapshot = monitor.create_snapshot(self.target)

        self.assertEqual([c.field for c in snapshot.changes], ["content_hash"])
        self.assertIsNone(snapshot.changes[0].significance)
        self.assertEqual(snapshot.significance, Significance.MEDIUM)

    def test_extraction_crash_is_no_data(self):
        strategy = MagicMock(wraps=PricingStrategy())
        strategy.category = Category.PRICING
        strategy.candidate_paths = PricingStrategy.candidate_paths
        strategy.keywords = PricingStrategy.keywords
        strategy.homepage_fallback = False
        strategy.needs_homepage = False
        strategy.extract.side_effect = AttributeError("boom")

        with self.assertLogs("monitor", level="ERROR"):
            result = self.monitor(strategy).run(self.target)

        self.assertEqual(result.outcome, CrawlOutcome.NO_DATA)
        self.assertEqual(self.store.keys(), [])

    def test_store_failure_is_failed_outcome(self):
        store = MagicMock()
        store.find_latest.return_value = None
        store.save.side_effect = RuntimeError("Failed to save snapshot")
        self.store = store

        result = self.monitor().run(self.target)

        self.assertEqual(result.outcome, CrawlOutcome.FAILED)
        self.assertIsNone(result.snapshot)

    def test_pair_lock_is_shared_per_pair(self):
        self.assertIs(pair_lock(1, Category.PRICING), pair_lock(1, Category.PRICING))
        self.assertIsNot(pair_lock(1, Category.PRICING), pair_lock(1, Category.SERVICES))

    def test_concurrent_runs_on_one_pair_chain_their_snapshots(self):
        self.store = SlowSnapshotStore()
        monitor = self.monitor()
        barrier = threading.Barrier(2)
        results = []

        def run():
            barrier.wait()
            results.append(monitor.run(self.target))

        threads = [threading.Thread(target=run) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        self.assertEqual([r.outcome for r in results], [CrawlOutcome.SNAPSHOT] * 2)
        newer, older = self.store.history(1, Category.PRICING)
        self.assertIsNone(older.previous_snapshot_id)
        self.assertEqual(newer.previous_snapshot_id, older.snapshot_id)
        self.assertEqual(newer.previous_hash, older.content_hash)


if __name__ == "__main__":
    unittest.main()
