from __future__ import annotations

from typing import Optional
import os
from prometheus_client import Counter, Gauge, REGISTRY

_contributions_total: Optional[Counter] = None
_contributed_amount_total: Optional[Counter] = None
_dividends_added_total: Optional[Counter] = None
_dividends_paid_total: Optional[Counter] = None
_payouts_total: Optional[Counter] = None
_operations_rejected_total: Optional[Counter] = None
_total_contributions_gauge: Optional[Gauge] = None
_pending_dividends_gauge: Optional[Gauge] = None
_participants_gauge: Optional[Gauge] = None


class _NoOp:
    def labels(self, *args, **kwargs):
        return self
    def inc(self, *args, **kwargs):
        return None
    def set(self, *args, **kwargs):
        return None


def _disabled() -> bool:
    return os.getenv("DISABLE_PROMETHEUS", "0") == "1"


def _existing(name: str):
    # Counters register under their base name without the _total suffix
    names = getattr(REGISTRY, "_names_to_collectors", {})
    coll = names.get(name)
    if coll is None and name.endswith("_total"):
        coll = names.get(name[: -len("_total")])
    return coll


def _safe_counter(name: str, doc: str, labelnames):
    if _disabled():
        return _NoOp()
    try:
        return Counter(name, doc, labelnames)
    except ValueError:
        # Already registered (module reloaded or a second getter); reuse it
        coll = _existing(name)
        return coll if coll is not None else _NoOp()


def _safe_gauge_labels(name: str, doc: str, labelnames):
    if _disabled():
        return _NoOp()
    try:
        return Gauge(name, doc, labelnames)
    except ValueError:
        coll = _existing(name)
        return coll if coll is not None else _NoOp()


def get_contributions_total():
    global _contributions_total
    if _contributions_total is None:
        _contributions_total = _safe_counter("pool_contributions_total", "Contributions accepted", ["pool"])
    return _contributions_total


def get_contributed_amount_total():
    """Counter: contributed value in minor units, labeled by pool."""
    global _contributed_amount_total
    if _contributed_amount_total is None:
        _contributed_amount_total = _safe_counter(
            "pool_contributed_amount_total", "Contributed value (minor units)", ["pool"]
        )
    return _contributed_amount_total


def get_dividends_added_total():
    global _dividends_added_total
    if _dividends_added_total is None:
        _dividends_added_total = _safe_counter(
            "pool_dividends_added_total", "Dividends funded (minor units)", ["pool"]
        )
    return _dividends_added_total


def get_dividends_paid_total():
    global _dividends_paid_total
    if _dividends_paid_total is None:
        _dividends_paid_total = _safe_counter(
            "pool_dividends_paid_total", "Dividends paid out (minor units)", ["pool"]
        )
    return _dividends_paid_total


def get_payouts_total():
    global _payouts_total
    if _payouts_total is None:
        _payouts_total = _safe_counter("pool_payouts_total", "Individual dividend payouts", ["pool"])
    return _payouts_total


def get_operations_rejected_total():
    """Counter: pool_operations_rejected_total{operation,reason}"""
    global _operations_rejected_total
    if _operations_rejected_total is None:
        _operations_rejected_total = _safe_counter(
            "pool_operations_rejected_total", "Ledger operations rejected", ["operation", "reason"]
        )
    return _operations_rejected_total


def get_total_contributions_gauge():
    global _total_contributions_gauge
    if _total_contributions_gauge is None:
        _total_contributions_gauge = _safe_gauge_labels(
            "pool_total_contributions", "Sum of all contributions (minor units)", ["pool"]
        )
    return _total_contributions_gauge


def get_pending_dividends_gauge():
    global _pending_dividends_gauge
    if _pending_dividends_gauge is None:
        _pending_dividends_gauge = _safe_gauge_labels(
            "pool_pending_dividends", "Funded dividends awaiting distribution (minor units)", ["pool"]
        )
    return _pending_dividends_gauge


def get_participants_gauge():
    global _participants_gauge
    if _participants_gauge is None:
        _participants_gauge = _safe_gauge_labels("pool_participants", "Registered participants", ["pool"])
    return _participants_gauge


def set_pool_gauges(pool_id: str, total_contributions: int, total_dividends: int, participants: int) -> None:
    get_total_contributions_gauge().labels(pool_id).set(float(total_contributions))
    get_pending_dividends_gauge().labels(pool_id).set(float(total_dividends))
    get_participants_gauge().labels(pool_id).set(float(participants))
