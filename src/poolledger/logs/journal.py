from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List

from ..events.schema import EventEnvelope
from ..metrics.pool import _safe_counter

log = logging.getLogger("poolledger.journal")


def _get_append_counters():
    app = _safe_counter("journal_appends_total", "Journal records appended", ["pool"])
    err = _safe_counter("journal_errors_total", "Journal errors", ["reason", "pool"])
    return app, err


REQUIRED_KEYS = {"ts", "pool_id", "sequence", "correlation_id", "event_type", "payload"}


def validate_record(rec: Dict[str, Any]) -> List[str]:
    return sorted(k for k in REQUIRED_KEYS if k not in rec)


def record_from_envelope(env: EventEnvelope) -> Dict[str, Any]:
    payload = env.event.model_dump(exclude={"event_type", "ts", "pool_id"})
    return {
        "ts": env.event.ts,
        "pool_id": env.event.pool_id,
        "sequence": env.sequence,
        "correlation_id": env.correlation_id,
        "event_type": env.event.event_type,
        "payload": payload,
    }


def append_jsonl(path: str, rec: Dict[str, Any]) -> bool:
    """Append one record as a JSON line; returns False if it was not written."""
    pool = str(rec.get("pool_id", "unknown"))
    app, err = _get_append_counters()
    missing = validate_record(rec)
    if missing:
        err.labels("missing_fields", pool).inc()
        log.warning("journal record missing fields: %s", ",".join(missing))
        return False
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")
    except OSError as e:
        err.labels("io_error", pool).inc()
        log.error("journal write to %s failed: %s", path, e)
        return False
    app.labels(pool).inc()
    return True


class JournalWriter:
    """Ledger subscriber that journals each committed event."""

    def __init__(self, path: str):
        self.path = path

    def __call__(self, env: EventEnvelope) -> None:
        append_jsonl(self.path, record_from_envelope(env))


def read_jsonl(path: str) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]
