from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from extraction.models import Category
from snapshot.models import Snapshot


class SnapshotStore(ABC):
    """
    Abstract interface for the append-only snapshot log.
    Exactly one snapshot per (target, category) is the latest.
    """

    @abstractmethod
    def find_latest(self, target_id: int, category: Category) -> Optional[Snapshot]:
        """Retrieve the current latest snapshot for the pair, if any."""
        pass

    @abstractmethod
    def save(self, snapshot: Snapshot) -> None:
        """Append a snapshot and atomically make it the latest for its pair."""
        pass

    @abstractmethod
    def delete_older_than(self, target_id: int, category: Category, keep: int) -> int:
        """
        Prune all but the newest `keep` snapshots of the pair.
        The latest snapshot is never deleted. Returns the number of rows removed.
        """
        pass

    @abstractmethod
    def history(self, target_id: int, category: Category, limit: int = 10) -> List[Snapshot]:
        """Newest-first snapshots of the pair."""
        pass

    @abstractmethod
    def keys(self) -> List[Tuple[int, Category]]:
        """Every (target_id, Category) pair with at least one snapshot."""
        pass
