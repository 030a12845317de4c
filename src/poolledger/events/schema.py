from __future__ import annotations

from typing import Literal, Union
from pydantic import BaseModel, Field


# ---- Base ----

class BaseEvent(BaseModel):
    event_type: str
    ts: int
    pool_id: str


# ---- Event types ----

class ContributionReceived(BaseEvent):
    event_type: Literal["contribution_received"] = "contribution_received"
    identity: str
    amount: int


class DividendsAdded(BaseEvent):
    event_type: Literal["dividends_added"] = "dividends_added"
    amount: int


class DividendDistributed(BaseEvent):
    event_type: Literal["dividend_distributed"] = "dividend_distributed"
    identity: str
    amount: int


class PoolClosed(BaseEvent):
    event_type: Literal["pool_closed"] = "pool_closed"


AnyEvent = Union[
    ContributionReceived,
    DividendsAdded,
    DividendDistributed,
    PoolClosed,
]


# ---- Envelope ----

class EventEnvelope(BaseModel):
    schema_version: str = "v1"
    correlation_id: str
    sequence: int = 0
    # Tagged by event_type so dumps keep each event's own fields and parse back
    event: AnyEvent = Field(discriminator="event_type")
