# Content hashing for extracted Facts.
# Input: Facts dataclass (or any JSON-like structure)
# Output: sha256 hex digest that is stable across runs

import dataclasses
import hashlib
import json
from enum import Enum


def canonicalize(obj):
    """
    Stable, JSON-ready form of a value:
    - dict keys sorted
    - sets / frozensets sorted (their order carries no meaning)
    - lists / tuples kept in their original order (it does)
    - dataclasses via to_dict() when they define one
    """
    if hasattr(obj, "to_dict") and callable(obj.to_dict):
        return canonicalize(obj.to_dict())
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return canonicalize(dataclasses.asdict(obj))
    if isinstance(obj, dict):
        return {str(k): canonicalize(obj[k]) for k in sorted(obj, key=str)}
    if isinstance(obj, (set, frozenset)):
        members = [canonicalize(v) for v in obj]
        return sorted(members, key=_sort_key)
    if isinstance(obj, (list, tuple)):
        return [canonicalize(v) for v in obj]
    if isinstance(obj, Enum):
        return obj.value
    return obj


def _sort_key(value):
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


def canonical_json(obj):
    return json.dumps(canonicalize(obj), sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def hash_facts(facts):
    """Hash of canonicalized Facts: set order never matters, list order always does."""
    payload = canonical_json(facts).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()
