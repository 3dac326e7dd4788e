"""
Alert events produced by the monitor.
Routing and delivery to humans happen elsewhere; sinks here only log or collect.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

from crawler.logger import logger
from detection.models import Change, Significance
from extraction.models import Category


@dataclass(frozen=True)
class AlertEvent:
    target_id: int
    category: Category
    significance: Optional[Significance]
    changes: Tuple[Change, ...]
    domain: Optional[str] = None
    source_url: Optional[str] = None
    snapshot_id: Optional[str] = None
    name: Optional[str] = None

    def to_dict(self):
        return {
            "target_id": self.target_id,
            "category": self.category.value,
            "significance": self.significance.value if self.significance else None,
            "changes": [c.to_dict() for c in self.changes],
            "domain": self.domain,
            "source_url": self.source_url,
            "snapshot_id": self.snapshot_id,
            "name": self.name,
        }


def build_event(target, snapshot, min_significance=Significance.LOW) -> Optional[AlertEvent]:
    """Event for a produced snapshot, or None when no change reaches `min_significance`."""
    changes = snapshot.changes_at_least(min_significance)
    if not changes:
        return None
    return AlertEvent(
        target_id=snapshot.target_id,
        category=snapshot.category,
        significance=snapshot.significance,
        changes=tuple(changes),
        domain=target.domain,
        source_url=snapshot.source_url,
        snapshot_id=snapshot.snapshot_id,
        name=target.display_name,
    )


class AlertSink(ABC):

    @abstractmethod
    def emit(self, event: AlertEvent) -> None:
        pass


class LoggingAlertSink(AlertSink):
    """Writes one line per event and one per change; HIGH and CRITICAL as warnings."""

    def emit(self, event: AlertEvent) -> None:
        level = "MEDIUM" if event.significance is None else event.significance.label
        log = logger.warning if event.significance is not None and event.significance.should_alert() else logger.info
        context = event.domain or str(event.target_id)

        who = f"{event.name}, " if event.name and event.name != event.domain else ""
        log(f"[ALERT] {who}{event.category.label}: {len(event.changes)} change(s), significance {level}",
            extra={"context": context})
        for change in event.changes:
            rated = change.significance.label if change.significance else "-"
            log(f"[ALERT]   {change.field} [{rated}]: {change.before!r} -> {change.after!r}",
                extra={"context": context})


class CollectingAlertSink(AlertSink):
    """Keeps emitted events in memory (dry runs, tests)."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: List[AlertEvent] = []

    def emit(self, event: AlertEvent) -> None:
        with self._lock:
            self.events.append(event)

    def clear(self):
        with self._lock:
            self.events.clear()
