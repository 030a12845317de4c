from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

Principal = str

UNIT = 10**18
MIN_INVESTMENT = UNIT // 100


class PoolState(str, Enum):
    ACTIVE = "Active"
    CLOSED = "Closed"


@dataclass
class Participant:
    identity: Principal
    contribution: int = 0
    ownership_percentage: int = 0
    last_dividends_claimed: int = 0
    exists: bool = True


@dataclass(frozen=True)
class ParticipantInfo:
    identity: Principal
    contribution: int
    ownership_percentage: int
    last_dividends_claimed: int


@dataclass(frozen=True)
class PoolMetrics:
    pool_id: str
    manager: Principal
    total_contributions: int
    total_dividends: int
    participant_count: int
    state: PoolState
    custody_balance: Optional[int] = None
