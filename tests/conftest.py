import itertools

import pytest

from poolledger.ledger.model import UNIT
from poolledger.ledger.pool import PoolLedger
from poolledger.settlement.memory import InMemorySettlement

MANAGER = "manager"

_pool_ids = itertools.count(1)


@pytest.fixture(autouse=True)
def published(monkeypatch):
    """Capture envelopes the ledger publishes instead of sending them to Redis."""
    captured = []
    monkeypatch.setattr("poolledger.ledger.pool.publish_event", captured.append)
    return captured


@pytest.fixture
def settlement():
    return InMemorySettlement(
        balances={
            MANAGER: 1_000 * UNIT,
            "alice": 10 * UNIT,
            "bob": 10 * UNIT,
            "carol": 10 * UNIT,
        }
    )


@pytest.fixture
def ledger(settlement):
    # Unique pool ids keep metric samples from different tests apart
    return PoolLedger(MANAGER, settlement, pool_id=f"test-pool-{next(_pool_ids)}", clock=lambda: 1_000)
