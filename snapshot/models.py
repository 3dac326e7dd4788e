import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from crawler.hasher import canonicalize
from detection.models import Change, Significance
from extraction.models import Category


def new_snapshot_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Snapshot:
    """
    Stored (Facts, hash, Changes, significance) for one (target, category) at one point in time.
    Never mutated once saved; a newer run appends a new Snapshot and moves the latest pointer.
    `changes` is empty for the first snapshot of a pair and whenever the hash is unchanged.
    """
    target_id: int
    category: Category
    content_hash: str
    facts: Any
    metrics: Dict[str, Any] = field(default_factory=dict)
    changes: Tuple[Change, ...] = ()
    significance: Optional[Significance] = None
    source_url: Optional[str] = None
    previous_snapshot_id: Optional[str] = None
    previous_hash: Optional[str] = None
    snapshot_id: str = field(default_factory=new_snapshot_id)
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def key(self) -> Tuple[int, Category]:
        return (self.target_id, self.category)

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    @property
    def is_first(self) -> bool:
        return self.previous_snapshot_id is None

    def should_alert(self) -> bool:
        return self.significance is not None and self.significance.should_alert()

    def changes_at_least(self, minimum: Significance):
        """Changes rated at or above `minimum`. Unrated changes count as MEDIUM."""
        selected = []
        for change in self.changes:
            rated = change.significance or Significance.MEDIUM
            if rated >= minimum:
                selected.append(change)
        return selected

    def to_dict(self):
        return {
            "snapshot_id": self.snapshot_id,
            "target_id": self.target_id,
            "category": self.category.value,
            "content_hash": self.content_hash,
            "facts": canonicalize(self.facts),
            "metrics": canonicalize(self.metrics),
            "changes": [c.to_dict() for c in self.changes],
            "significance": self.significance.value if self.significance else None,
            "source_url": self.source_url,
            "previous_snapshot_id": self.previous_snapshot_id,
            "previous_hash": self.previous_hash,
            "created_at": self.created_at.isoformat(),
        }
