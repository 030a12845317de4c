"""
Main entrypoint for poolledger.

What it does:
- Loads pool settings from `config/pool.yaml` (manager overridable through
  `POOL_MANAGER`).
- Starts the Prometheus metrics server when a port is configured.
- Builds a `PoolLedger` over an in-memory settlement seeded with the
  configured wallets, journaling committed events when `journal_path` is set.
- With `POOL_DEMO=1`, replays the scripted `demo` steps from the config and
  logs the resulting pool metrics.

Where it is used:
- Invoked by `python -m poolledger.main`.

Key related modules:
- `poolledger.config.loader.PoolSettings` and `load_settings`
- `poolledger.ledger.pool.PoolLedger`
- `poolledger.settlement.memory.InMemorySettlement`
"""
import logging
import os
from typing import Optional

from poolledger.config.loader import DemoStep, PoolSettings, load_settings
from poolledger.ledger.errors import PoolLedgerError
from poolledger.ledger.model import UNIT
from poolledger.ledger.pool import PoolLedger
from poolledger.logs.journal import JournalWriter
from poolledger.metrics.core import metrics_port, serve_pool_metrics
from poolledger.settlement.memory import InMemorySettlement

log = logging.getLogger("poolledger.main")


def build_ledger(settings: PoolSettings, settlement: Optional[InMemorySettlement] = None) -> PoolLedger:
    settlement = settlement or InMemorySettlement(balances=settings.wallets)
    ledger = PoolLedger.from_settings(settings, settlement)
    if settings.journal_path:
        ledger.subscribe(JournalWriter(settings.journal_path))
        log.info(f"Journaling pool events to {settings.journal_path}")
    return ledger


def run_step(ledger: PoolLedger, step: DemoStep) -> bool:
    """Apply one scripted step; returns False when the ledger rejects it."""
    try:
        if step.op == "contribute":
            ledger.contribute(step.caller, int(step.amount or 0))
        elif step.op == "add_dividends":
            ledger.add_dividends(step.caller, int(step.amount or 0))
        elif step.op == "distribute_dividends":
            ledger.distribute_dividends(step.caller)
        elif step.op == "close_pool":
            ledger.close_pool(step.caller)
        else:
            raise ValueError(f"unknown demo op: {step.op}")
    except PoolLedgerError as e:
        log.info(f"Demo step {step.op} by {step.caller} rejected: {e.reason}")
        return False
    return True


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    settings = load_settings(os.getenv("POOL_CONFIG", "config/pool.yaml"))
    logging.info(f"Pool: {settings.pool_id}, manager: {settings.manager}")

    ledger = build_ledger(settings)
    serve_pool_metrics(ledger, metrics_port(settings))

    if os.getenv("POOL_DEMO", "0") == "1":
        applied = sum(1 for step in settings.demo if run_step(ledger, step))
        logging.info(f"Demo replayed: {applied}/{len(settings.demo)} steps applied")

    metrics = ledger.get_pool_metrics()
    logging.info(
        f"Pool {metrics.pool_id} state={metrics.state.value} participants={metrics.participant_count} "
        f"contributions={metrics.total_contributions / UNIT:.4f} "
        f"pending_dividends={metrics.total_dividends} custody={metrics.custody_balance}"
    )
    for identity in ledger.get_participant_identities():
        info = ledger.get_participant_info(identity)
        logging.info(f"  {identity}: {info.ownership_percentage}% of pool, contributed {info.contribution}")


if __name__ == "__main__":
    main()
