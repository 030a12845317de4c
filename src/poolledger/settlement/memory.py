from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from ..ledger.model import Principal

logger = logging.getLogger(__name__)

# Runs after value lands in a recipient's wallet. Returning False rejects the
# payment, which is then reversed.
ReceiveHook = Callable[[int], Optional[bool]]


class InMemorySettlement:
    """Wallet balances plus a custody account, all held in process.

    Used by the entrypoint demo and the tests. Receive hooks stand in for
    recipient code, including recipients that reject payments or call back
    into the ledger.
    """

    def __init__(self, balances: Optional[Dict[Principal, int]] = None, custody: int = 0):
        self.balances: Dict[Principal, int] = {k: int(v) for k, v in (balances or {}).items()}
        self.custody = int(custody)
        self._hooks: Dict[Principal, ReceiveHook] = {}
        self._snapshots: List[Tuple[Dict[Principal, int], int]] = []

    def credit(self, principal: Principal, amount: int) -> None:
        self.balances[principal] = self.balances.get(principal, 0) + int(amount)

    def balance_of(self, principal: Principal) -> int:
        return self.balances.get(principal, 0)

    def on_receive(self, principal: Principal, hook: Optional[ReceiveHook]) -> None:
        if hook is None:
            self._hooks.pop(principal, None)
        else:
            self._hooks[principal] = hook

    def collect(self, sender: Principal, amount: int) -> bool:
        available = self.balances.get(sender, 0)
        if amount <= 0 or available < amount:
            logger.debug("collect refused: sender=%s amount=%s available=%s", sender, amount, available)
            return False
        self.balances[sender] = available - amount
        self.custody += amount
        return True

    def transfer_value(self, to: Principal, amount: int) -> bool:
        if amount <= 0 or self.custody < amount:
            logger.debug("transfer refused: to=%s amount=%s custody=%s", to, amount, self.custody)
            return False
        self.custody -= amount
        self.balances[to] = self.balances.get(to, 0) + amount
        hook = self._hooks.get(to)
        if hook is not None:
            try:
                accepted = hook(amount)
            except Exception:
                self._reverse(to, amount)
                raise
            if accepted is False:
                self._reverse(to, amount)
                logger.debug("transfer rejected by recipient: to=%s amount=%s", to, amount)
                return False
        return True

    def custody_balance(self) -> int:
        return self.custody

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self._snapshots.append((dict(self.balances), self.custody))
        try:
            yield
        except BaseException:
            self.balances, self.custody = self._snapshots.pop()
            raise
        else:
            self._snapshots.pop()

    def _reverse(self, to: Principal, amount: int) -> None:
        self.balances[to] -= amount
        self.custody += amount
