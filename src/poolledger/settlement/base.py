from __future__ import annotations

from typing import ContextManager, Protocol

from ..ledger.model import Principal


class Settlement(Protocol):
    """Moves value into and out of pool custody.

    Each call is atomic on its own. ``transaction()`` scopes one ledger
    operation: leaving it with an exception undoes every movement made inside.
    """

    def collect(self, sender: Principal, amount: int) -> bool:
        ...

    def transfer_value(self, to: Principal, amount: int) -> bool:
        ...

    def custody_balance(self) -> int:
        ...

    def transaction(self) -> ContextManager[None]:
        ...
