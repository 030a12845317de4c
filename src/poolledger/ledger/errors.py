"""Errors raised by the pool ledger.

Every error aborts the operation that raised it; nothing written during that
operation survives. ``reason`` is a stable code used as a metrics label and in
log lines.
"""
from __future__ import annotations


class PoolLedgerError(Exception):
    reason = "error"


class Unauthorized(PoolLedgerError):
    reason = "unauthorized"


class InvalidState(PoolLedgerError):
    reason = "invalid_state"


class BelowMinimum(PoolLedgerError):
    reason = "below_minimum"


class InvalidAmount(PoolLedgerError):
    reason = "invalid_amount"


class InsufficientCustody(PoolLedgerError):
    reason = "insufficient_custody"


class NothingToDistribute(PoolLedgerError):
    reason = "nothing_to_distribute"


class PendingDividends(PoolLedgerError):
    reason = "pending_dividends"


class Reentrancy(PoolLedgerError):
    reason = "reentrancy"


class NotFound(PoolLedgerError):
    reason = "not_found"


class TransferFailed(PoolLedgerError):
    reason = "transfer_failed"
