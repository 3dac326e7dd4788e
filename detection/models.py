from enum import Enum
from dataclasses import dataclass
from typing import Any, Optional, Tuple


class Significance(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return _WEIGHTS[self]

    @property
    def label(self) -> str:
        return self.value.upper()

    def should_alert(self) -> bool:
        return self.weight >= Significance.HIGH.weight

    def __lt__(self, other):
        if not isinstance(other, Significance):
            return NotImplemented
        return self.weight < other.weight

    def __le__(self, other):
        if not isinstance(other, Significance):
            return NotImplemented
        return self.weight <= other.weight

    def __gt__(self, other):
        if not isinstance(other, Significance):
            return NotImplemented
        return self.weight > other.weight

    def __ge__(self, other):
        if not isinstance(other, Significance):
            return NotImplemented
        return self.weight >= other.weight

    @classmethod
    def parse(cls, value, default=None):
        """Lenient lookup by value or name ('high', 'HIGH'); `default` when unknown."""
        if isinstance(value, cls):
            return value
        if not value:
            return default
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default


_WEIGHTS = {
    Significance.LOW: 25,
    Significance.MEDIUM: 50,
    Significance.HIGH: 75,
    Significance.CRITICAL: 100,
}


class FieldKind(Enum):
    NUMERIC = "numeric"          # generic 50/25/10 thresholds
    PRICE = "price"              # lenient 20/10 thresholds
    COUNT = "count"              # numeric value, rated by the list rule over `basis`
    SET = "set"                  # unordered collection, list rule
    LIST = "list"                # ordered collection, list rule
    NAMED_SET = "named_set"      # split into <field>_added / <field>_removed
    STRING = "string"            # normalized Levenshtein distance
    CATEGORICAL = "categorical"  # MEDIUM, or HIGH when high_impact


@dataclass(frozen=True)
class FieldValue:
    """
    One comparable field of a Facts view.
    `basis` is the collection a COUNT is derived from.
    `paired` fields are only compared when present on both sides.
    """
    kind: FieldKind
    value: Any
    basis: Optional[Tuple[Any, ...]] = None
    high_impact: bool = False
    paired: bool = False


@dataclass(frozen=True)
class Change:
    """
    A single detected difference between two snapshots.
    significance is None when the rule could not rate the values
    (e.g. a number appearing where there was none).
    """
    field: str
    before: Any
    after: Any
    significance: Optional[Significance] = None

    def to_dict(self):
        return {
            "field": self.field,
            "before": self.before,
            "after": self.after,
            "significance": self.significance.value if self.significance else None,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            field=data["field"],
            before=data.get("before"),
            after=data.get("after"),
            significance=Significance.parse(data.get("significance")),
        )


def roll_up(changes, default=Significance.MEDIUM) -> Optional[Significance]:
    """Highest significance among `changes`; `default` when none could be rated; None when empty."""
    if not changes:
        return None
    rated = [c.significance for c in changes if c.significance is not None]
    if not rated:
        return default
    return max(rated, key=lambda s: s.weight)
