from __future__ import annotations

from typing import Optional
from prometheus_client import Counter

from ..metrics.pool import _safe_counter

_events_total: Optional[Counter] = None


def get_events_total():
    global _events_total
    if _events_total is None:
        _events_total = _safe_counter("events_total", "Pool ledger events", ["type"])
    return _events_total
