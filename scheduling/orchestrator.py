"""
Batch orchestration.

Selects due targets, runs every requested category monitor for each target
on a bounded worker pool and reports one crawl outcome per target. A target
that fails never affects the other targets of the batch.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from crawler.config import MAX_WORKERS
from crawler.logger import logger
from crawler.monitor import MonitorResult
from detection.alerts import build_event
from detection.models import Significance
from extraction.models import Category
from scheduling.models import CrawlOutcome, MonitoredTarget


def combine_outcomes(outcomes) -> CrawlOutcome:
    """FAILED if any category failed, else SNAPSHOT if any snapshot was produced, else NO_DATA."""
    outcomes = list(outcomes)
    if CrawlOutcome.FAILED in outcomes:
        return CrawlOutcome.FAILED
    if CrawlOutcome.SNAPSHOT in outcomes:
        return CrawlOutcome.SNAPSHOT
    return CrawlOutcome.NO_DATA


@dataclass
class TargetReport:
    target: MonitoredTarget
    outcome: CrawlOutcome
    results: Dict[Category, MonitorResult] = field(default_factory=dict)


@dataclass
class BatchReport:
    targets: int = 0
    snapshots: int = 0
    changed: int = 0
    no_data: int = 0
    failures: int = 0
    alerts: int = 0
    # HIGH / CRITICAL change rows: domain, category, field, before, after, significance
    significant: List[dict] = field(default_factory=list)
    errors: List[dict] = field(default_factory=list)
    duration: float = 0.0

    def add(self, report: TargetReport):
        self.targets += 1
        if report.outcome == CrawlOutcome.FAILED:
            self.failures += 1

        for category, result in report.results.items():
            if result.outcome == CrawlOutcome.NO_DATA:
                self.no_data += 1
            elif result.outcome == CrawlOutcome.FAILED:
                self.errors.append({
                    "domain": report.target.domain,
                    "category": category.value,
                    "error": result.error,
                })

            snapshot = result.snapshot
            if snapshot is None:
                continue
            self.snapshots += 1
            if snapshot.has_changes:
                self.changed += 1
            for change in snapshot.changes_at_least(Significance.HIGH):
                self.significant.append({
                    "domain": report.target.domain,
                    "category": category.value,
                    "field": change.field,
                    "before": change.before,
                    "after": change.after,
                    "significance": change.significance,
                })


class Scheduler:
    """
    Owns the batch run: due-target selection, the worker pool and outcome reporting.
    `monitors` maps each Category to its Monitor; all monitors share one HostThrottle
    through their fetcher.
    """

    def __init__(self, target_source, monitors, alert_sink=None, max_workers=MAX_WORKERS, dry_run=False):
        self.target_source = target_source
        self.monitors = dict(monitors)
        self.alert_sink = alert_sink
        self.max_workers = max(1, int(max_workers))
        self.dry_run = dry_run
        self._alert_lock = threading.Lock()
        self._sent = 0

    def due_targets(self, now: Optional[datetime] = None) -> List[MonitoredTarget]:
        now = now or datetime.utcnow()
        return [t for t in self.target_source.list_targets(active_only=True) if t.is_due(now)]

    def select_targets(self, target_id=None, limit=None, now=None) -> List[MonitoredTarget]:
        """
        Due targets, or the single target asked for by id (run even when not due).
        Inactive targets are never run.
        """
        if target_id is not None:
            target = self.target_source.get(target_id)
            if target is None:
                logger.warning(f"[SCHEDULER] Unknown target {target_id}", extra={"context": "scheduler"})
                return []
            if not target.active:
                logger.warning(f"[SCHEDULER] Target {target.domain} is inactive, skipped",
                               extra={"context": "scheduler"})
                return []
            return [target]

        targets = self.due_targets(now)
        if limit is not None:
            targets = targets[:max(0, int(limit))]
        return targets

    def run_due(self, categories, target_id=None, min_significance=Significance.LOW,
                limit=None, now=None) -> BatchReport:
        now = now or datetime.utcnow()
        categories = [c if isinstance(c, Category) else Category(c) for c in categories]
        missing = [c.value for c in categories if c not in self.monitors]
        if missing:
            raise ValueError(f"No monitor configured for categories: {', '.join(missing)}")

        start_time = time.time()
        report = BatchReport()
        targets = self.select_targets(target_id=target_id, limit=limit, now=now)
        if not targets:
            logger.info("[SCHEDULER] No targets due", extra={"context": "scheduler"})
            return report

        logger.info(
            f"[SCHEDULER] {len(targets)} target(s), categories "
            f"{', '.join(c.value for c in categories)}, {self.max_workers} workers",
            extra={"context": "scheduler"},
        )

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="Worker") as executor:
            future_to_target = {
                executor.submit(self.run_target, target, categories, min_significance, now): target
                for target in targets
            }

            for future in as_completed(future_to_target):
                target = future_to_target[future]
                try:
                    target_report = future.result()
                except Exception as e:
                    logger.error(f"[SCHEDULER] Target run crashed: {e}",
                                 extra={"context": target.domain}, exc_info=True)
                    target_report = TargetReport(target, CrawlOutcome.FAILED)
                    self._record(target, CrawlOutcome.FAILED, now)
                report.add(target_report)

        report.alerts = self._take_sent()
        report.duration = time.time() - start_time
        logger.info(
            f"[SCHEDULER] Done: {report.targets} targets, {report.snapshots} snapshots, "
            f"{report.changed} changed, {report.failures} failed in {report.duration:.1f}s",
            extra={"context": "scheduler"},
        )
        return report

    def run_target(self, target, categories, min_significance=Significance.LOW, now=None) -> TargetReport:
        """Run every category for one target in order and record a single outcome."""
        results = {}
        for category in categories:
            try:
                result = self.monitors[category].run(target)
            except Exception as e:
                logger.error(f"[SCHEDULER] {category.label} monitor crashed: {e}",
                             extra={"context": target.domain}, exc_info=True)
                result = MonitorResult(CrawlOutcome.FAILED, error=str(e))
            results[category] = result

            if result.snapshot is not None:
                self._emit(target, result.snapshot, min_significance)

        outcome = combine_outcomes(r.outcome for r in results.values())
        self._record(target, outcome, now)
        return TargetReport(target, outcome, results)

    def cleanup(self, keep: int) -> int:
        """Prune the snapshot history of every stored (target, category) pair down to `keep`."""
        stores = []
        for monitor in self.monitors.values():
            if all(monitor.store is not s for s in stores):
                stores.append(monitor.store)

        removed = 0
        for store in stores:
            for target_id, category in store.keys():
                if category in self.monitors:
                    removed += store.delete_older_than(target_id, category, keep)
        logger.info(f"[SCHEDULER] Retention removed {removed} snapshots", extra={"context": "scheduler"})
        return removed

    def _emit(self, target, snapshot, min_significance):
        if self.alert_sink is None:
            return
        event = build_event(target, snapshot, min_significance)
        if event is None:
            return
        try:
            self.alert_sink.emit(event)
        except Exception as e:
            logger.error(f"[SCHEDULER] Alert sink failed: {e}", extra={"context": target.domain})
            return
        with self._alert_lock:
            self._sent += 1

    def _take_sent(self):
        with self._alert_lock:
            sent = self._sent
            self._sent = 0
        return sent

    def _record(self, target, outcome, now):
        if self.dry_run:
            return
        try:
            self.target_source.record_crawl_attempt(target.target_id, outcome, at=now)
        except Exception as e:
            logger.error(f"[SCHEDULER] Could not record outcome {outcome.value}: {e}",
                         extra={"context": target.domain})
