"""Settlement package.

Public API:
- Settlement: protocol the ledger calls to move value in and out of custody.
- InMemorySettlement: in-process wallets and custody with receive hooks.
"""

from .base import Settlement
from .memory import InMemorySettlement

__all__ = ["Settlement", "InMemorySettlement"]
