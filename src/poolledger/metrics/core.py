"""Exposing a pool's metrics over HTTP.

What it does:
- Resolves the exporter port (`PROMETHEUS_PORT` wins over `metrics_port` in
  the pool settings).
- Seeds the pool gauges from the ledger's current state so a scrape right
  after startup sees the pool, then starts the Prometheus HTTP server.
- Tolerates bind failures (useful in constrained environments and tests).
"""

import logging
import os
from typing import TYPE_CHECKING, Optional

from prometheus_client import start_http_server

from .pool import set_pool_gauges

if TYPE_CHECKING:
    from ..config.loader import PoolSettings
    from ..ledger.pool import PoolLedger


def metrics_port(settings: "PoolSettings") -> Optional[int]:
    raw = os.getenv("PROMETHEUS_PORT") or settings.metrics_port
    return int(raw) if raw else None


def serve_pool_metrics(ledger: "PoolLedger", port: Optional[int]) -> Optional[int]:
    """Seed the ledger's gauges and start the exporter; return port or None.

    Logs a warning and continues if the port cannot be bound.
    """
    m = ledger.get_pool_metrics()
    set_pool_gauges(m.pool_id, m.total_contributions, m.total_dividends, m.participant_count)
    if port is None:
        return None
    try:
        start_http_server(port)
        logging.info(f"Prometheus metrics for pool {m.pool_id} on :{port}")
        return port
    except OSError as e:
        logging.warning(f"Failed to start Prometheus server on :{port}: {e}")
        return None
