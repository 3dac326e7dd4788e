"""
Per-category monitor.

Locate the category page, fetch it, extract Facts, hash them and compare
with the latest stored snapshot of the same (target, category). The
read-diff-write sequence is serialized per pair.
"""

import threading
from dataclasses import dataclass
from typing import Optional

from crawler.errors import FetchError
from crawler.hasher import hash_facts
from crawler.logger import logger
from detection.engine import ChangeClassifier
from detection.models import Change, roll_up
from scheduling.models import CrawlOutcome
from snapshot.models import Snapshot

_pair_locks = {}
_pair_locks_guard = threading.Lock()


def pair_lock(target_id, category) -> threading.Lock:
    """Process-wide lock for one (target, category) pair."""
    key = (target_id, category)
    with _pair_locks_guard:
        lock = _pair_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _pair_locks[key] = lock
        return lock


@dataclass(frozen=True)
class MonitorResult:
    outcome: CrawlOutcome
    snapshot: Optional[Snapshot] = None
    error: Optional[str] = None
    source_url: Optional[str] = None


class Monitor:

    def __init__(self, strategy, fetcher, locator, store, classifier=None, dry_run=False):
        self.strategy = strategy
        self.fetcher = fetcher
        self.locator = locator
        self.store = store
        self.classifier = classifier or ChangeClassifier()
        self.dry_run = dry_run

    @property
    def category(self):
        return self.strategy.category

    def create_snapshot(self, target) -> Optional[Snapshot]:
        """Snapshot of the target's category page, or None when nothing was produced."""
        return self.run(target).snapshot

    def run(self, target) -> MonitorResult:
        ctx = {"context": target.domain, "category": self.category}
        base_url = target.base_url
        if not base_url:
            logger.info("[MONITOR] No resolvable URL, skipped", extra=ctx)
            return MonitorResult(CrawlOutcome.NO_DATA)

        try:
            url, homepage_html = self.locator.locate_page(
                base_url, self.strategy.candidate_paths, self.strategy.keywords
            )
            if url is None:
                if not self.strategy.homepage_fallback:
                    logger.info("[MONITOR] Page not found", extra=ctx)
                    return MonitorResult(CrawlOutcome.NO_DATA)
                url = base_url

            # The homepage fetched for the keyword scan is reused, never requested twice
            on_homepage = url.rstrip("/") == base_url
            if on_homepage and homepage_html is not None:
                html = homepage_html
            else:
                html = self.fetcher.get_html(url)

            if on_homepage or not self.strategy.needs_homepage:
                homepage_html = None
            elif homepage_html is None:
                homepage_html = self.fetcher.get_html(base_url)
        except FetchError as e:
            logger.warning(f"[MONITOR] {e}", extra=ctx)
            return MonitorResult(CrawlOutcome.FAILED, error=str(e))

        try:
            facts = self.strategy.extract(html, url, homepage_html)
        except Exception as e:
            # Heuristic parsing must never fail the run
            logger.error(f"[MONITOR] Extraction failed on {url}: {e}", extra=ctx, exc_info=True)
            return MonitorResult(CrawlOutcome.NO_DATA, source_url=url)

        if facts.is_empty:
            logger.info(f"[MONITOR] No recognizable content on {url}", extra=ctx)
            return MonitorResult(CrawlOutcome.NO_DATA, source_url=url)

        metrics = self.strategy.metrics(facts)
        content_hash = hash_facts(facts)

        with pair_lock(target.target_id, self.category):
            previous = self.store.find_latest(target.target_id, self.category)
            changes = self.compare(previous, facts, content_hash, target.domain)

            snapshot = Snapshot(
                target_id=target.target_id,
                category=self.category,
                content_hash=content_hash,
                facts=facts,
                metrics=metrics,
                changes=tuple(changes),
                significance=roll_up(changes),
                source_url=url,
                previous_snapshot_id=previous.snapshot_id if previous else None,
                previous_hash=previous.content_hash if previous else None,
            )

            if not self.dry_run:
                try:
                    self.store.save(snapshot)
                except (ValueError, RuntimeError) as e:
                    logger.error(f"[MONITOR] Snapshot not saved: {e}", extra=ctx)
                    return MonitorResult(CrawlOutcome.FAILED, error=str(e), source_url=url)

        if snapshot.is_first:
            logger.info(f"[MONITOR] First snapshot from {url}", extra=ctx)
        elif not changes:
            logger.info("[MONITOR] Unchanged", extra=ctx)
        else:
            logger.info(
                f"[MONITOR] {len(changes)} change(s), significance {snapshot.significance.label}",
                extra=ctx,
            )
        return MonitorResult(CrawlOutcome.SNAPSHOT, snapshot=snapshot, source_url=url)

    def compare(self, previous: Optional[Snapshot], facts, content_hash: str, context: Optional[str] = None):
        """Changes versus the previous snapshot; empty for a first snapshot or an unchanged hash."""
        if previous is None or previous.content_hash == content_hash:
            return []

        changes = self.classifier.diff(
            self.strategy.fields(previous.facts),
            self.strategy.fields(facts),
            context=context,
        )
        if not changes:
            changes = [Change("content_hash", previous.content_hash, content_hash)]
        return changes
