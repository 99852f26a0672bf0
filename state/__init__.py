"""Operations-center state - entity models, immutable snapshots, the store.

Package layout:
  models.py    - frozen entity dataclasses and closed enumerations
  snapshot.py  - Snapshot (immutable state + derived metrics)
  results.py   - Result, NotFound, ValidationFailed, InvariantViolation
  store.py     - EntityStore (single-writer commit path, invariant checks)
"""

from .results import InvariantViolation, NotFound, Rejected, Result, ValidationFailed
from .snapshot import Snapshot
from .store import EntityStore

__all__ = [
    "EntityStore",
    "InvariantViolation",
    "NotFound",
    "Rejected",
    "Result",
    "Snapshot",
    "ValidationFailed",
]
