"""Fixed wall clock shared by the operations-center tests."""
from __future__ import annotations

from datetime import datetime, timezone

FIXED_NOW = datetime(2025, 7, 12, 18, 30, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW
