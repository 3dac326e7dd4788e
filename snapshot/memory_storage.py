import threading
from typing import Dict, List, Optional, Tuple

from extraction.models import Category
from snapshot.models import Snapshot
from snapshot.storage import SnapshotStore


class InMemorySnapshotStore(SnapshotStore):
    """
    Process-local SnapshotStore.
    Keeps an append-only list per (target, category); the latest is the last element.
    Used for dry runs and tests.
    """

    def __init__(self):
        self._log: Dict[Tuple[int, Category], List[Snapshot]] = {}
        self._lock = threading.Lock()

    def find_latest(self, target_id: int, category: Category) -> Optional[Snapshot]:
        with self._lock:
            snapshots = self._log.get((target_id, category))
            return snapshots[-1] if snapshots else None

    def save(self, snapshot: Snapshot) -> None:
        with self._lock:
            snapshots = self._log.setdefault(snapshot.key, [])
            if any(s.snapshot_id == snapshot.snapshot_id for s in snapshots):
                raise ValueError(f"Snapshot {snapshot.snapshot_id} already stored")
            snapshots.append(snapshot)

    def delete_older_than(self, target_id: int, category: Category, keep: int) -> int:
        keep = max(int(keep), 1)
        with self._lock:
            snapshots = self._log.get((target_id, category), [])
            removed = max(len(snapshots) - keep, 0)
            if removed:
                del snapshots[:removed]
            return removed

    def history(self, target_id: int, category: Category, limit: int = 10) -> List[Snapshot]:
        with self._lock:
            snapshots = list(self._log.get((target_id, category), []))
        snapshots.reverse()
        return snapshots[:limit]

    def keys(self) -> List[Tuple[int, Category]]:
        with self._lock:
            return list(self._log)

    def count(self, target_id: int, category: Category) -> int:
        with self._lock:
            return len(self._log.get((target_id, category), []))
