import json
from numbers import Number
from typing import Any, Dict, List, Optional

from crawler.errors import ClassifierError
from crawler.hasher import canonicalize
from crawler.logger import logger
from detection.models import Change, FieldKind, FieldValue, Significance


def levenshtein_distance(s1: str, s2: str) -> int:
    """Edit distance (insertions, deletions, substitutions) between two strings."""
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)

    if len(s2) == 0:
        return len(s1)

    previous_row = range(len(s2) + 1)
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def numeric_significance(before: float, after: float) -> Significance:
    percent = _percent_change(before, after)
    if percent >= 50:
        return Significance.CRITICAL
    if percent >= 25:
        return Significance.HIGH
    if percent >= 10:
        return Significance.MEDIUM
    return Significance.LOW


def price_significance(before: float, after: float) -> Significance:
    # Prices use their own, more lenient thresholds than generic numbers
    percent = _percent_change(before, after)
    if percent >= 20:
        return Significance.HIGH
    if percent >= 10:
        return Significance.MEDIUM
    return Significance.LOW


def collection_significance(before, after) -> Significance:
    before_keys = _keys(before)
    after_keys = _keys(after)
    added = after_keys - before_keys
    removed = before_keys - after_keys

    change_count = len(added) + len(removed)
    total_items = max(len(before), len(after), 1)
    percent = change_count * 100 / total_items

    if percent >= 50 or change_count >= 5:
        return Significance.HIGH
    if percent >= 20 or change_count >= 3:
        return Significance.MEDIUM
    return Significance.LOW


def count_only_significance(items) -> Significance:
    return Significance.HIGH if len(items) >= 3 else Significance.MEDIUM


def string_significance(before: str, after: str) -> Significance:
    distance = levenshtein_distance(before, after)
    max_len = max(len(before), len(after), 1)
    percent = distance * 100 / max_len

    if percent >= 50:
        return Significance.HIGH
    if percent >= 20:
        return Significance.MEDIUM
    return Significance.LOW


def _percent_change(before, after) -> float:
    if before <= 0:
        return 100.0
    return abs(after - before) * 100 / before


def _keys(items) -> set:
    """Hashable identity of collection members; records are keyed by their canonical JSON."""
    keys = set()
    for item in items:
        if isinstance(item, (dict, list, tuple, set, frozenset)):
            keys.add(json.dumps(canonicalize(item), sort_keys=True, ensure_ascii=False))
        else:
            keys.add(item)
    return keys


def _is_number(value) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _sorted_members(items) -> list:
    return sorted(items, key=lambda v: json.dumps(canonicalize(v), sort_keys=True, ensure_ascii=False))


class ChangeClassifier:
    """
    Field-by-field diff of two comparable Facts views.

    Each strategy turns its Facts into a {field name: FieldValue} view; the
    classifier walks every field present on either side, emits a Change when
    the values differ and rates it with the rule of the field's kind.
    A field whose shape cannot be compared is logged and skipped.
    """

    def diff(self, previous: Dict[str, FieldValue], current: Dict[str, FieldValue],
             context: Optional[str] = None) -> List[Change]:
        changes: List[Change] = []
        names = list(previous)
        names.extend(name for name in current if name not in previous)

        for name in names:
            before = previous.get(name)
            after = current.get(name)
            try:
                changes.extend(self.compare_field(name, before, after))
            except ClassifierError as e:
                logger.warning(f"[CLASSIFY] {e}", extra={"context": context})
        return changes

    def compare_field(self, name: str, before: Optional[FieldValue],
                      after: Optional[FieldValue]) -> List[Change]:
        shape = after or before
        if shape is None:
            return []
        if before is not None and after is not None and before.kind != after.kind:
            raise ClassifierError(name, f"kind changed from {before.kind.value} to {after.kind.value}")
        if shape.paired and (before is None or after is None):
            return []

        old = before.value if before is not None else None
        new = after.value if after is not None else None

        kind = shape.kind
        if kind == FieldKind.NAMED_SET:
            return self._compare_named_set(name, old, new)

        if kind in (FieldKind.SET, FieldKind.LIST):
            return self._compare_collection(name, old, new, ordered=kind == FieldKind.LIST)

        if kind == FieldKind.COUNT:
            return self._compare_count(name, before, after)

        if old == new:
            return []

        if kind in (FieldKind.NUMERIC, FieldKind.PRICE):
            return [Change(name, old, new, self._rate_number(name, kind, old, new))]

        if kind == FieldKind.STRING:
            if (old is not None and not isinstance(old, str)) or (new is not None and not isinstance(new, str)):
                raise ClassifierError(name, "string field holds a non-string value")
            return [Change(name, old, new, string_significance(old or "", new or ""))]

        significance = Significance.HIGH if shape.high_impact else Significance.MEDIUM
        return [Change(name, _as_text(old), _as_text(new), significance)]

    def _rate_number(self, name, kind, old, new) -> Optional[Significance]:
        if old is None or new is None:
            return None
        if not _is_number(old) or not _is_number(new):
            raise ClassifierError(name, "numeric field holds a non-numeric value")
        if kind == FieldKind.PRICE:
            return price_significance(old, new)
        return numeric_significance(old, new)

    def _compare_collection(self, name, old, new, ordered) -> List[Change]:
        old_items = self._as_collection(name, old)
        new_items = self._as_collection(name, new)
        if ordered:
            if [canonicalize(v) for v in old_items] == [canonicalize(v) for v in new_items]:
                return []
        elif _keys(old_items) == _keys(new_items) and len(old_items) == len(new_items):
            return []

        if not ordered:
            old_items = _sorted_members(old_items)
            new_items = _sorted_members(new_items)
        return [Change(name, canonicalize(old_items), canonicalize(new_items),
                       collection_significance(old_items, new_items))]

    def _compare_named_set(self, name, old, new) -> List[Change]:
        old_items = self._as_collection(name, old)
        new_items = self._as_collection(name, new)
        old_keys = _keys(old_items)
        new_keys = _keys(new_items)

        added = _sorted_members(k for k in new_keys - old_keys)
        removed = _sorted_members(k for k in old_keys - new_keys)

        changes = []
        if added:
            changes.append(Change(f"{name}_added", None, added, count_only_significance(added)))
        if removed:
            changes.append(Change(f"{name}_removed", removed, None, count_only_significance(removed)))
        return changes

    def _compare_count(self, name, before, after) -> List[Change]:
        old = before.value if before is not None else None
        new = after.value if after is not None else None
        if old == new:
            return []
        if (old is not None and not _is_number(old)) or (new is not None and not _is_number(new)):
            raise ClassifierError(name, "count field holds a non-numeric value")

        old_basis = before.basis if before is not None and before.basis is not None else ()
        new_basis = after.basis if after is not None and after.basis is not None else ()
        return [Change(name, old, new, collection_significance(list(old_basis), list(new_basis)))]

    @staticmethod
    def _as_collection(name, value) -> list:
        if value is None:
            return []
        if isinstance(value, (list, tuple, set, frozenset)):
            return list(value)
        raise ClassifierError(name, f"expected a collection, got {type(value).__name__}")


def _as_text(value: Any):
    """Categorical values are reported as strings (booleans as true/false)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
