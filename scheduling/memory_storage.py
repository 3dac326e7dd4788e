import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from scheduling.models import CrawlOutcome, MonitoredTarget
from scheduling.storage import TargetSource


class InMemoryTargetSource(TargetSource):
    """TargetSource over a fixed list of targets; records every attempt for inspection."""

    def __init__(self, targets=()):
        self._targets: Dict[int, MonitoredTarget] = {t.target_id: t for t in targets}
        self._lock = threading.Lock()
        self.attempts: List[Tuple[int, CrawlOutcome, datetime]] = []
        self.failures: Dict[int, int] = {}

    def list_targets(self, active_only: bool = True) -> List[MonitoredTarget]:
        with self._lock:
            targets = sorted(self._targets.values(), key=lambda t: t.target_id)
        if active_only:
            targets = [t for t in targets if t.active]
        return targets

    def get(self, target_id: int) -> Optional[MonitoredTarget]:
        with self._lock:
            return self._targets.get(target_id)

    def record_crawl_attempt(self, target_id: int, outcome: CrawlOutcome,
                             at: Optional[datetime] = None) -> None:
        at = at or datetime.utcnow()
        with self._lock:
            self.attempts.append((target_id, outcome, at))
            target = self._targets.get(target_id)
            if target is None:
                return
            if outcome.advances_crawl:
                self._targets[target_id] = replace(target, last_crawled_at=at)
                self.failures[target_id] = 0
            else:
                self.failures[target_id] = self.failures.get(target_id, 0) + 1
