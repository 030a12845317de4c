"""Ledger package.

Public API:
- PoolLedger: contributions, ownership recompute, dividend funding/distribution, lifecycle.
- Participant / ParticipantInfo / PoolMetrics / PoolState: ledger records and query results.
- errors: PoolLedgerError and its subclasses.
"""

from .model import (  # re-export
    MIN_INVESTMENT,
    UNIT,
    Participant,
    ParticipantInfo,
    PoolMetrics,
    PoolState,
    Principal,
)
from .pool import PoolLedger
