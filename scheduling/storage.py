from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from scheduling.models import CrawlOutcome, MonitoredTarget


class TargetSource(ABC):
    """
    Read-only view of the monitored targets.
    The only write is the narrow crawl-outcome callback; targets are never created or deleted here.
    """

    @abstractmethod
    def list_targets(self, active_only: bool = True) -> List[MonitoredTarget]:
        pass

    @abstractmethod
    def get(self, target_id: int) -> Optional[MonitoredTarget]:
        pass

    @abstractmethod
    def record_crawl_attempt(self, target_id: int, outcome: CrawlOutcome,
                             at: Optional[datetime] = None) -> None:
        """
        Report the outcome of one batch run for a target.
        SNAPSHOT and NO_DATA advance last_crawled_at; FAILED leaves it untouched.
        """
        pass

    def find(self, value) -> Optional[MonitoredTarget]:
        """Target matching an id, domain or URL (active or not)."""
        for target in self.list_targets(active_only=False):
            if target.matches(value):
                return target
        return None
