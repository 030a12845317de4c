"""
Tabular views of the pool for reporting.

Builds pandas frames of participants (in first-contribution order) and of
dividend payouts taken from committed event envelopes, and writes them to
parquet next to each other.
"""

from __future__ import annotations

import os
from typing import Iterable

import pandas as pd

from ..events.schema import DividendDistributed, EventEnvelope
from ..ledger.pool import PoolLedger

PARTICIPANT_COLUMNS = ["identity", "contribution", "ownership_percentage", "last_dividends_claimed"]
PAYOUT_COLUMNS = ["sequence", "correlation_id", "ts", "identity", "amount"]


def participants_frame(ledger: PoolLedger) -> pd.DataFrame:
    rows = [ledger.get_participant_info(i).__dict__ for i in ledger.get_participant_identities()]
    return pd.DataFrame(rows, columns=PARTICIPANT_COLUMNS)


def payouts_frame(envelopes: Iterable[EventEnvelope]) -> pd.DataFrame:
    rows = []
    for env in envelopes:
        if isinstance(env.event, DividendDistributed):
            rows.append({
                "sequence": env.sequence,
                "correlation_id": env.correlation_id,
                "ts": env.event.ts,
                "identity": env.event.identity,
                "amount": env.event.amount,
            })
    return pd.DataFrame(rows, columns=PAYOUT_COLUMNS)


def _amounts_as_text(df: pd.DataFrame, columns) -> pd.DataFrame:
    # Minor-unit amounts can overflow int64; stored as text whatever their size
    out = df.copy()
    for col in columns:
        out[col] = out[col].astype(str)
    return out


def write_parquet(ledger: PoolLedger, envelopes: Iterable[EventEnvelope], base_dir: str = "data") -> None:
    os.makedirs(base_dir, exist_ok=True)
    participants = _amounts_as_text(participants_frame(ledger), ["contribution"])
    payouts = _amounts_as_text(payouts_frame(envelopes), ["amount"])
    participants.to_parquet(os.path.join(base_dir, "participants.parquet"))
    payouts.to_parquet(os.path.join(base_dir, "payouts.parquet"))
